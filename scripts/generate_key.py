"""Generate a credential encryption key.

Put the printed value into CREDENTIALS_ENCRYPTION_KEY. Keep it secret: every
stored bank token and cashier secret is encrypted with it.
"""

import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.security.vault import generate_key


def main():
    print(generate_key())


if __name__ == "__main__":
    main()
