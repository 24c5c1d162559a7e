"""Agent entry point: ``python -m prismsync.agent`` or ``prismsync-agent``."""

import asyncio
import sys

from pydantic import ValidationError

from prismsync.agent.main import run_agent


def main():
    """Run the prismsync agent until it is signalled to stop."""
    try:
        asyncio.run(run_agent())
    except KeyboardInterrupt:
        print("\nAgent shutdown requested")
        sys.exit(0)
    except (FileNotFoundError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Set PRISMSYNC_CONFIG_DIR to a directory holding config.yaml", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Agent error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
