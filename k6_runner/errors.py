class K6RunnerError(Exception):
    """Base class for runner failures that end a run with exit code 1"""


class ConfigError(K6RunnerError):
    pass


class UnknownScenarioError(K6RunnerError):
    def __init__(self, name: str, valid):
        self.name = name
        self.valid = list(valid)
        super().__init__(f"Unknown test type: {name}")


class PhaseFailedError(K6RunnerError):
    def __init__(self, phase_name: str, reason: str, exit_code: int = 1):
        self.phase_name = phase_name
        self.reason = reason
        self.exit_code = exit_code
        super().__init__(f"{phase_name} failed: {reason}")
