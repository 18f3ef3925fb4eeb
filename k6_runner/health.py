import requests
import urllib3

from .logs import get_logger

# k6 itself runs with --insecure-skip-tls-verify against self-signed test envs
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

log = get_logger("health")


def check_target(url: str, timeout: int = 5) -> bool:
    """Check the target answers at all before spending minutes on a run"""
    try:
        response = requests.get(url, verify=False, timeout=timeout)
        log.info(f"✅ Target {url}: {response.status_code}")
        return True
    except requests.RequestException as e:
        log.error(f"❌ Target {url} unreachable: {e}")
        return False
