"""Main entry point for the Pocket Bank terminal"""

from pocket_bank.cli import main


if __name__ == "__main__":
    main()
