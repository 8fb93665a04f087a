"""Reserve personnel CLI tool (reservectl)."""

from typing import Optional

import typer

app = typer.Typer(name="reservectl", help="Reserve personnel platform CLI")
db_app = typer.Typer(help="Database management commands")
permissions_app = typer.Typer(help="Inspect the role-permission table")
accounts_app = typer.Typer(help="Account request queue")
audit_app = typer.Typer(help="Audit trail")
app.add_typer(db_app, name="db")
app.add_typer(permissions_app, name="permissions")
app.add_typer(accounts_app, name="accounts")
app.add_typer(audit_app, name="audit")

API_URL_OPTION = typer.Option("http://localhost:8000", envvar="RESERVE_API_URL", help="API base URL")
TOKEN_OPTION = typer.Option(None, envvar="RESERVE_API_TOKEN", help="Bearer access token")


def _create_tables():
    import reserve_api.models  # noqa: F401  register tables
    from reserve_api.db.base import Base
    from reserve_api.db.session import engine

    Base.metadata.create_all(bind=engine)


@db_app.command("init")
def db_init():
    """Create all tables."""
    _create_tables()
    typer.echo("Tables created")


@db_app.command("seed")
def db_seed():
    """Seed the director account and sample account requests."""
    from reserve_api.db.session import SessionLocal
    from reserve_api.db.seeds.seed_director import seed_director
    from reserve_api.db.seeds.seed_sample_data import seed_sample_data

    db = SessionLocal()
    try:
        seed_director(db)
        seed_sample_data(db)
    finally:
        db.close()
    typer.echo("All seeds applied")


@db_app.command("reset")
def db_reset():
    """Drop and recreate every table (DANGER)."""
    confirm = typer.confirm("This will DROP all personnel, account and audit data. Continue?")
    if not confirm:
        raise typer.Abort()
    import reserve_api.models  # noqa: F401
    from reserve_api.db.base import Base
    from reserve_api.db.session import engine

    Base.metadata.drop_all(bind=engine)
    _create_tables()
    typer.echo("Database reset")


@permissions_app.command("show")
def permissions_show(
    role: str = typer.Option("reservist", help="Stored role"),
    simulate: Optional[str] = typer.Option(None, help="Preview another role"),
):
    """Print the effective permission set for a role."""
    from types import SimpleNamespace
    from reserve_api.core.permissions import PermissionEvaluator, Role, PERMISSION_TABLE_VERSION

    parsed = Role.parse(role)
    if parsed is None:
        typer.echo(f"Unknown role: {role}", err=True)
        raise typer.Exit(code=2)
    evaluator = PermissionEvaluator(SimpleNamespace(role=parsed))
    if simulate:
        try:
            evaluator.simulate_role(simulate)
        except ValueError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(code=2)

    label = evaluator.effective_role().value
    if evaluator.is_simulating:
        label += f" (simulated; actual role {parsed.value})"
    typer.echo(f"Role: {label}  [table v{PERMISSION_TABLE_VERSION}]")
    for permission in sorted(evaluator.permissions()):
        typer.echo(f"  {permission}")


@accounts_app.command("list")
def accounts_list(
    status: Optional[str] = typer.Option(None, help="pending, approved or rejected"),
    api_url: str = API_URL_OPTION,
    token: Optional[str] = TOKEN_OPTION,
):
    """List account requests from a running API."""
    from reserve_api.client import ReserveApiClient

    with ReserveApiClient(api_url, token) as client:
        result = client.list_account_requests(status)

    if result.state == "failed":
        typer.echo(f"Data unavailable: {result.error}", err=True)
        raise typer.Exit(code=1)
    if result.state == "empty":
        typer.echo("No account requests.")
        return
    for account in result.data:
        typer.echo(
            f"#{account['id']:<5} {account['status']:<9} {account['name']:<28} "
            f"{account.get('rank') or '-':<22} {account.get('company') or '-'}"
        )


AUDIT_LIST_FIELDS = ["timestamp", "userName", "userRole", "action", "resource", "resourceId", "details"]


@audit_app.command("list")
def audit_list(
    page: int = typer.Option(1),
    limit: int = typer.Option(50),
    action: Optional[str] = typer.Option(None),
    resource: Optional[str] = typer.Option(None),
    search: Optional[str] = typer.Option(None, help="Search term"),
    as_csv: bool = typer.Option(False, "--csv", help="Print CSV instead of a table"),
    api_url: str = API_URL_OPTION,
    token: Optional[str] = TOKEN_OPTION,
):
    """Show one page of the audit trail from a running API."""
    from reserve_api.client import ReserveApiClient
    from reserve_api.services.export_service import rows_to_csv

    filters = {"action": action, "resource": resource, "searchTerm": search}
    with ReserveApiClient(api_url, token) as client:
        result = client.list_audit_logs(page=page, limit=limit, **filters)

    if result.state == "failed":
        typer.echo(f"Data unavailable: {result.error}", err=True)
        raise typer.Exit(code=1)
    if result.state == "empty":
        typer.echo("No audit entries.")
        return
    if as_csv:
        typer.echo(rows_to_csv(result.data, headers=AUDIT_LIST_FIELDS), nl=False)
        return
    for entry in result.data:
        typer.echo(
            f"{entry.get('timestamp', ''):<20} {entry.get('userName') or '-':<24} "
            f"{entry.get('action', ''):<8} {entry.get('resource', ''):<16} {entry.get('details') or ''}"
        )


@audit_app.command("export")
def audit_export(
    output: str = typer.Option("audit-logs.csv", "--output", "-o", help="CSV file to write"),
    action: Optional[str] = typer.Option(None),
    resource: Optional[str] = typer.Option(None),
    search: Optional[str] = typer.Option(None, help="Search term"),
    api_url: str = API_URL_OPTION,
    token: Optional[str] = TOKEN_OPTION,
):
    """Download the filtered audit trail as CSV."""
    import csv
    import io
    import httpx
    from reserve_api.client import ReserveApiClient

    filters = {"action": action, "resource": resource, "searchTerm": search}
    with ReserveApiClient(api_url, token) as client:
        try:
            content = client.export_audit_logs(**{k: v for k, v in filters.items() if v})
        except httpx.HTTPError as e:
            typer.echo(f"Data unavailable: {e}", err=True)
            raise typer.Exit(code=1)

    with open(output, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    rows = max(len(list(csv.reader(io.StringIO(content)))) - 1, 0)
    typer.echo(f"Wrote {rows} entries to {output}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0"),
    port: int = typer.Option(8000),
    reload: bool = typer.Option(False),
):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("reserve_api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
