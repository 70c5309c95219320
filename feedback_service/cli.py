import click
import pandas as pd
from flask.cli import with_appcontext

from feedback_service.extensions import db
from feedback_service.models import User, Team, TeamMember, ROLE_CHOICES, ROLE_ADMIN, ROLE_MANAGER
from feedback_service.services.access import Principal
from feedback_service.services.errors import FeedbackError
from feedback_service.services.lifecycle import get_lifecycle

# CSV header -> bulk entry key
_IMPORT_COLUMNS = {
    "employee_id": "employee_id",
    "employeeId": "employee_id",
    "strengths": "strengths",
    "areas_to_improve": "areas_to_improve",
    "areasToImprove": "areas_to_improve",
    "sentiment": "sentiment",
}


def _principal_for(user_id: int, role: str) -> Principal:
    user = db.session.get(User, user_id)
    if not user or user.role != role:
        raise click.ClickException(f"User id {user_id} is not an existing {role}")
    if not user.is_active:
        raise click.ClickException(f"User id {user_id} is inactive")
    return Principal.from_user(user)


@click.group()
def directory():
    """Team directory management."""

@directory.command("create-user")
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(ROLE_CHOICES), default="employee")
@with_appcontext
def create_user(email, name, role):
    if db.session.query(User).filter_by(email=email.lower()).count():
        raise click.ClickException("User already exists")
    user = User(email=email.lower(), name=name, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"User created id={user.id} email={user.email} role={role}")

@directory.command("create-team")
@click.option("--manager-id", type=int, required=True)
@click.option("--name", required=True)
@with_appcontext
def create_team(manager_id, name):
    _principal_for(manager_id, ROLE_MANAGER)
    team = Team(name=name, manager_id=manager_id, is_active=True)
    db.session.add(team)
    db.session.commit()
    click.echo(f"Team created id={team.id} manager_id={manager_id}")

@directory.command("add-member")
@click.option("--team-id", type=int, required=True)
@click.option("--employee-id", type=int, required=True)
@with_appcontext
def add_member(team_id, employee_id):
    team = db.session.get(Team, team_id)
    if not team:
        raise click.ClickException(f"Team id {team_id} not found")
    if db.session.query(TeamMember).filter_by(team_id=team_id, employee_id=employee_id).count():
        raise click.ClickException("Employee is already on this team")
    db.session.add(TeamMember(team_id=team_id, employee_id=employee_id))
    db.session.commit()
    click.echo(f"Member added team_id={team_id} employee_id={employee_id}")


@click.group()
def feedback():
    """Feedback maintenance."""

@feedback.command("import")
@click.option("--manager-id", type=int, required=True, help="Authoring manager")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_feedback(manager_id, path):
    """Create feedback for many employees from a CSV (all-or-nothing)."""
    principal = _principal_for(manager_id, ROLE_MANAGER)

    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df = df.rename(columns={c: _IMPORT_COLUMNS[c] for c in df.columns if c in _IMPORT_COLUMNS})
    missing = {"employee_id", "strengths", "areas_to_improve", "sentiment"} - set(df.columns)
    if missing:
        raise click.ClickException(f"CSV is missing columns: {', '.join(sorted(missing))}")

    entries = df[["employee_id", "strengths", "areas_to_improve", "sentiment"]].to_dict(orient="records")
    try:
        result = get_lifecycle().bulk_create_feedback(principal, entries)
    except FeedbackError as e:
        details = getattr(e, "errors", None) or []
        raise click.ClickException("\n".join([e.message, *details])) from e
    click.echo(f"Imported {result.created_count} feedback record(s) for manager_id={manager_id}")


@click.group()
def audit():
    """Audit trail maintenance (admin only, irreversible)."""

@audit.command("delete")
@click.option("--admin-id", type=int, required=True)
@click.argument("entry_ids", nargs=-1, required=True)
@with_appcontext
def audit_delete(admin_id, entry_ids):
    principal = _principal_for(admin_id, ROLE_ADMIN)
    try:
        result = get_lifecycle().delete_audit_entries(principal, list(entry_ids))
    except FeedbackError as e:
        raise click.ClickException(e.message) from e
    click.echo(
        f"Deleted {result['deleted_count']} of {result['attempted']} audit entries "
        f"({result['invalid_ids']} invalid id(s) skipped)"
    )


def register_cli(app):
    app.cli.add_command(directory)
    app.cli.add_command(feedback)
    app.cli.add_command(audit)
