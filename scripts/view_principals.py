#!/usr/bin/env python3
"""
Utility script to list principals and their active refresh sessions.
Usage: python scripts/view_principals.py [user|analyst|admin]
"""

import sys
from pathlib import Path

from rich import print as rprint
from rich.console import Console
from rich.table import Table

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ipplatform.config import settings
from ipplatform.auth import sessions as session_store
from ipplatform.auth.accounts import list_principals, principal_class_of, status_of
from ipplatform.auth.database import get_engine, get_session_factory, init_db
from ipplatform.auth.models import PrincipalClass

console = Console()


def view_principals(only: PrincipalClass = None) -> int:
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    table = Table(title="Principals")
    table.add_column("Class", style="magenta")
    table.add_column("Username", style="yellow")
    table.add_column("Email", style="white")
    table.add_column("Role", style="green")
    table.add_column("Status", style="cyan")
    table.add_column("Sessions", style="blue", justify="right")

    count = 0
    with get_session_factory(engine)() as db:
        for principal in list_principals(db):
            principal_class = principal_class_of(principal)
            if only is not None and principal_class != only:
                continue
            sessions = session_store.get_active_sessions(db, principal_class, principal.id)
            table.add_row(
                principal_class.value,
                principal.username,
                principal.email,
                principal.role.value,
                status_of(principal).value,
                str(len(sessions)),
            )
            count += 1

    engine.dispose()

    if count == 0:
        rprint("[yellow]No principals found.[/yellow]")
    else:
        console.print(table)
        rprint(f"\n[dim]Showing {count} principals.[/dim]")
    return count


if __name__ == "__main__":
    only = None
    if len(sys.argv) > 1:
        try:
            only = PrincipalClass(sys.argv[1].upper())
        except ValueError:
            rprint(f"[red]Unknown principal class: {sys.argv[1]}[/red]")
            sys.exit(1)

    view_principals(only)
