"""
Cross-chain delivery scenario.
Brings up the localnet, relays one message per ordered pair of chains and
waits for the relayer to certify delivery.
"""
import sys
import os

# Add parent directory to sys.path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_keys_file
from interchain_e2e import E2ESettings, HarnessError, run_locally
from interchain_e2e.identity import KeyProvisioning


def run() -> None:
    try:
        settings = E2ESettings.from_env()
        print("=" * 60)
        print(f"Interchain e2e: {settings.node_count} nodes, workspace {settings.workspace}")
        print("=" * 60)
        keys = KeyProvisioning.from_file(get_keys_file())
        run_locally(settings, keys)
    except HarnessError as e:
        print(f"\n[E2E] E2E tests failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n[E2E] Interrupted.")
        sys.exit(130)


if __name__ == "__main__":
    run()
