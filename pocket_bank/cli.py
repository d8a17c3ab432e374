#!/usr/bin/env python3
"""
Pocket Bank terminal front end.

Usage:
    python -m pocket_bank
    python -m pocket_bank --backend sqlite --data-file bank.sqlite3
    pocket-bank --log-level INFO
"""

import sys
from typing import Optional

import click

from .app import (
    BankApplication, ShutdownRequested,
    EXIT_INTERRUPTED, EXIT_LOCKED, EXIT_OK, EXIT_PERSISTENCE_ERROR
)
from .commands import CommandDispatcher, CommandResult
from .config import PocketBankConfig
from .exceptions import ConcurrencyError, PersistenceError, ValidationError
from .logging_config import setup_logging
from .models import Transaction, parse_amount
from .operations import AccountInfo


TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

MAIN_MENU = [
    "Login",
    "Create new account",
    "Exit",
]

ACCOUNT_MENU = [
    "Check account info",
    "List all transactions",
    "Deposit cash",
    "Withdraw cash",
    "Transfer money",
    "Delete account",
    "Logout",
]


def print_select_menu(options):
    click.echo("Select:")
    for i, option in enumerate(options, start=1):
        click.echo(f"  {i}. {option}")


def report_error(result: CommandResult) -> None:
    click.echo(f"ERROR: {result.message}")


def format_transaction(txn: Transaction) -> str:
    """One history line: time, type, amount, closing balance, message"""
    return (f"{txn.timestamp.astimezone().strftime(TIME_FORMAT)}  {txn.direction.value}  "
            f"{txn.amount:>12}  closing {txn.closing_balance:>12}  {txn.message}")


def show_account_info(info: AccountInfo) -> None:
    click.echo(f"Name: {info.full_name}")
    click.echo(f"Username: {info.username}")
    click.echo(f"Current account balance: {info.balance}")
    if info.previous_login_at:
        click.echo(f"Last login: {info.previous_login_at.astimezone().strftime(TIME_FORMAT)}")
    click.echo(f"Last {len(info.recent_transactions)} transactions:")
    for txn in info.recent_transactions:
        click.echo(format_transaction(txn))


def prompt_amount():
    """Re-prompt until the amount is a positive number"""
    while True:
        raw = click.prompt("Enter amount")
        try:
            return parse_amount(raw)
        except ValidationError as e:
            click.echo(f"ERROR: invalid input, {e.message}")


def login(dispatcher: CommandDispatcher) -> bool:
    """Ask for a username and then passwords until login succeeds or fails"""
    username = click.prompt("Enter username").strip()
    result = dispatcher.begin_login(username)
    if not result.ok:
        report_error(result)
        return False
    while True:
        password = click.prompt("Enter password", hide_input=True)
        result = dispatcher.login(username, password)
        if result.ok:
            click.echo(result.message)
            return True
        if result.error == "incorrect_password":
            click.echo(result.message)
            continue
        report_error(result)
        return False


def create_account(dispatcher: CommandDispatcher) -> None:
    username = click.prompt("Enter username").strip()
    if username in dispatcher.store:
        click.echo("ERROR: account already taken")
        return
    full_name = click.prompt("Enter your full name")
    password = click.prompt(
        "Enter new password", hide_input=True,
        confirmation_prompt="Re-enter password"
    )
    result = dispatcher.create_account(username, full_name, password)
    click.echo(result.message if result.ok else f"ERROR: {result.message}")


def account_loop(dispatcher: CommandDispatcher) -> None:
    """Menu for the logged in account; returns on logout or deletion"""
    show_account_info(dispatcher.account_info().value)
    print_select_menu(ACCOUNT_MENU)

    while True:
        choice = click.prompt(f"{dispatcher.current_username}>", prompt_suffix=" ").strip()
        if choice == "1":
            show_account_info(dispatcher.account_info().value)
        elif choice == "2":
            for txn in dispatcher.list_transactions(0, None).value:
                click.echo(format_transaction(txn))
        elif choice in ("3", "4"):
            amount = prompt_amount()
            if choice == "3":
                result = dispatcher.deposit(amount)
            else:
                result = dispatcher.withdraw(amount)
            if result.ok:
                click.echo(result.message)
                click.echo(f"Closing balance: {result.value.closing_balance}")
            else:
                report_error(result)
        elif choice == "5":
            receiver = click.prompt("Enter receiver's username").strip()
            if dispatcher.store.find(receiver) is None:
                click.echo("ERROR: receiver not found")
                continue
            result = dispatcher.transfer(receiver, prompt_amount())
            if result.ok:
                click.echo(result.message)
                click.echo(f"Closing balance: {result.value[0].closing_balance}")
            else:
                report_error(result)
        elif choice == "6":
            first = click.confirm("Do you want to delete your account?", default=False)
            second = first and click.confirm("Are you sure you want to delete your account?",
                                             default=False)
            result = dispatcher.delete_account(first, second)
            click.echo(result.message)
            if result.value:
                return
        elif choice == "7":
            dispatcher.logout()
            return
        else:
            click.echo("Enter a valid choice")


def main_loop(dispatcher: CommandDispatcher) -> int:
    """Top level menu; returns the exit code once the ledger is saved"""
    click.echo("Welcome\n-------\n")
    print_select_menu(MAIN_MENU)

    while True:
        choice = click.prompt(">", prompt_suffix=" ").strip()
        if choice == "1":
            if login(dispatcher):
                account_loop(dispatcher)
        elif choice == "2":
            create_account(dispatcher)
        elif choice == "3":
            return dispatcher.exit().value
        else:
            click.echo("Enter a valid choice")


@click.command()
@click.option("--backend", type=click.Choice(["json", "sqlite"]), default=None,
              help="Storage backend (default: json)")
@click.option("--data-file", default=None, help="Path of the ledger file")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
def main(backend: Optional[str], data_file: Optional[str], log_level: Optional[str]):
    """Terminal banking ledger simulator"""
    overrides = {}
    if backend:
        overrides["storage_backend"] = backend
    if log_level:
        overrides["log_level"] = log_level
    config = PocketBankConfig(**overrides)
    if data_file:
        # The backend may come from the environment rather than --backend
        overrides["sqlite_file" if config.storage_backend == "sqlite" else "data_file"] = data_file
        config = PocketBankConfig(**overrides)
    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)

    app = BankApplication(config)
    exit_code = EXIT_OK
    with app.signal_handlers():
        try:
            dispatcher = app.start()
        except ConcurrencyError as e:
            click.echo(f"ERROR: {e.message}", err=True)
            sys.exit(EXIT_LOCKED)
        except PersistenceError as e:
            click.echo(f"ERROR: {e.message}", err=True)
            sys.exit(EXIT_PERSISTENCE_ERROR)
        except ShutdownRequested:
            click.echo("\nExiting")
            sys.exit(EXIT_INTERRUPTED)

        try:
            try:
                exit_code = main_loop(dispatcher)
            except (ShutdownRequested, click.Abort):
                click.echo("\nSaving and exiting")
                exit_code = EXIT_INTERRUPTED
            finally:
                # Runs on unexpected errors too; no-op if Exit already saved
                app.shutdown()
        except PersistenceError as e:
            click.echo(f"ERROR: {e.message}", err=True)
            exit_code = EXIT_PERSISTENCE_ERROR
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
