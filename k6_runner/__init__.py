"""Run k6 load-test scenarios in Docker against a target environment."""

__version__ = "1.0.0"
