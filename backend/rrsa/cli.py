# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/rrsa/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Load the stored document, migrating or seeding it when needed. Idempotent.
# - python -m flask system reset --yes
#   Replace the whole document with the starter seed (deletes all data).
# - python -m flask system export [--output rrsa.json]
#   Print or save the whole document as JSON.
# - python -m flask system import rrsa.json --yes
#   Replace the whole document with the contents of a JSON file.
#
# User inspection/bootstrap:
# - python -m flask users list [--league RRFL]
#   List users with roles and active status.
# - python -m flask users create --username ref_bo --password "secret12" --league RRFL
#   Create a user (prompts if options are omitted).
# - python -m flask users delete ref_bo --yes
#   Delete a user and their marks, reviews and lockout record.
# - python -m flask users set-password ref_bo
#   Replace a user's password (checked against the auth policy).
#
# Login lockouts:
# - python -m flask lockouts status [USERNAME]
# - python -m flask lockouts clear USERNAME
#
# Invites:
# - python -m flask invites list
# - python -m flask invites create --league RRFL --max-uses 3 [--expires 2026-12-31]
# - python -m flask invites revoke RRSA-AB12CD34

import json

import click
from flask.cli import with_appcontext

from .extensions import get_store
from .permissions import GlobalRole, LeagueRole
from .services.invite_service import InviteError, InviteService
from .services.lockout_policy import LockoutPolicy
from .services.session_service import SessionManager
from .validation import ConflictError, NotFoundError, SchemaError, ValidationError


CLI_ACTOR = "cli"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Load the document, migrating or seeding it if needed.

    Safe to run repeatedly; writes only when something changed.
    """
    store = get_store()
    click.echo("START Loading document...")
    changed = store.init()
    doc = store.snapshot()
    if changed:
        click.echo(f"PASS Document written at schema v{doc['schema_version']}")
    else:
        click.echo(f"PASS Document already current (schema v{doc['schema_version']})")
    click.echo(f"     Users: {len(doc['users'])}  Leagues: {', '.join(doc['settings']['leagues'])}")


@system_group.command('reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_system(yes):
    """
    DANGER: Replace the whole document with the starter seed.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    seed = get_store().reset(actor=CLI_ACTOR)
    click.echo(f"PASS Document reset to seed ({len(seed['users'])} users)")


@system_group.command('export')
@click.option('--output', type=click.Path(dir_okay=False, writable=True), help='Write to a file instead of stdout')
@with_appcontext
def export_system(output):
    """Export the whole document as JSON."""
    store = get_store()
    doc = store.export_document()
    text = json.dumps(doc, indent=2, ensure_ascii=False)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text)
        store.append_audit(CLI_ACTOR, "db_export", f"Exported document JSON to {output}.")
        click.echo(f"PASS Exported document to {output}")
    else:
        click.echo(text)


@system_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_system(path, yes):
    """Replace the whole document with a JSON file. No merge."""
    if not yes:
        click.confirm("WARN This will REPLACE ALL DATA. Are you sure?", abort=True)

    try:
        with open(path, encoding="utf-8") as fh:
            incoming = json.load(fh)
    except json.JSONDecodeError as e:
        click.echo(f"FAIL Not valid JSON: {e}")
        return

    try:
        counts = get_store().import_document(
            incoming, audit=(CLI_ACTOR, "db_import", f"Imported document JSON from {path}."),
        )
    except SchemaError as e:
        click.echo(f"FAIL Import rejected: {e}")
        return

    click.echo(
        f"PASS Imported {counts['users']} users, {counts['attendance_events']} attendance events, "
        f"{counts['performance_reviews']} performance reviews"
    )


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--league', help='Only users holding a role in this league')
@with_appcontext
def list_users(league):
    """List all users with their roles."""
    users = get_store().list_users()
    if league:
        users = [u for u in users if league in (u.get("league_roles") or {})]

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Username':<16} {'Display name':<24} {'Global role':<20} {'Active':<8} {'League roles'}")
    click.echo("="*100)

    for user in users:
        league_roles = user.get("league_roles") or {}
        roles_str = ", ".join(f"{lg}:{entry.get('role')}" for lg, entry in sorted(league_roles.items())) or "none"
        active_str = "Yes" if user.get("active", True) else "No"
        click.echo(
            f"{user['username']:<16} {user.get('display_name', ''):<24} "
            f"{user.get('global_role', ''):<20} {active_str:<8} {roles_str}"
        )

    click.echo("="*100 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (lowercase letters, digits, underscore)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--display-name', help='Display name (defaults to username)')
@click.option('--global-role', type=click.Choice([r.value for r in GlobalRole]), default=GlobalRole.OFFICIAL.value,
              show_default=True)
@click.option('--league', help='League scope (defaults to the configured default league)')
@click.option('--league-role', type=click.Choice([r.value for r in LeagueRole]), default=LeagueRole.OFFICIAL.value,
              show_default=True)
@click.option('--department', help='Department label within the league')
@with_appcontext
def create_user_cli(username, password, display_name, global_role, league, league_role, department):
    """
    Create a new user.

    The password must satisfy the configured auth policy.
    """
    store = get_store()
    try:
        SessionManager(store).validate_password(password)
        user = store.create_user(
            username,
            password,
            display_name=display_name,
            global_role=global_role,
            league=league,
            league_role=league_role,
            department=department,
            audit=(CLI_ACTOR, "user_create", f"Created user {str(username).strip().lower()} from the command line."),
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return

    scope = ", ".join(f"{lg}:{entry['role']}" for lg, entry in user["league_roles"].items())
    click.echo(f"PASS Created user: {user['username']} ({user['global_role']})")
    click.echo(f"     League roles: {scope}")


@users_group.command('delete')
@click.argument('username')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def delete_user_cli(username, yes):
    """Delete a user. Their attendance marks, reviews and lockout go with them."""
    if not yes:
        click.confirm(f"WARN Delete user '{username}' and all their records?", abort=True)
    try:
        removed = get_store().delete_user(
            username, audit=(CLI_ACTOR, "user_delete", f"Deleted user {username} from the command line."),
        )
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Deleted user: {removed['username']}")


@users_group.command('set-password')
@click.argument('username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='New password')
@with_appcontext
def set_password_cli(username, password):
    """Replace a user's password."""
    store = get_store()
    try:
        SessionManager(store).validate_password(password)
        store.set_user_password(
            username, password,
            audit=(CLI_ACTOR, "user_edit", f"Reset password for {username} from the command line."),
        )
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Password updated for {username}")


@click.group('lockouts')
def lockouts_group():
    """Login lockout inspection and repair."""


@lockouts_group.command('status')
@click.argument('username', required=False)
@with_appcontext
def lockout_status_cli(username):
    """Show lockout records (one user, or every stored record)."""
    policy = LockoutPolicy(get_store())
    if username:
        statuses = {username.strip().lower(): policy.status(username)}
    else:
        statuses = policy.list_statuses()

    if not statuses:
        click.echo("No lockout records.")
        return

    for uname, status in statuses.items():
        state = f"LOCKED until {status.locked_until}" if status.locked else "not locked"
        click.echo(f"{uname:<20} {state:<40} failures={status.count}")


@lockouts_group.command('clear')
@click.argument('username')
@with_appcontext
def lockout_clear_cli(username):
    """Unlock a username immediately."""
    try:
        removed = LockoutPolicy(get_store()).clear_lockout(username, actor=CLI_ACTOR)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return
    if removed:
        click.echo(f"PASS Cleared lockout for {username}")
    else:
        click.echo(f"WARN  No lockout record for {username}")


@click.group('invites')
def invites_group():
    """Invite issue, inspection and revocation."""


@invites_group.command('list')
@with_appcontext
def list_invites_cli():
    invites = InviteService(get_store()).list_invites()
    if not invites:
        click.echo("No invites found.")
        return

    click.echo(f"{'Code':<16} {'League':<8} {'Role':<20} {'Uses':<8} {'Expires':<22} {'Status'}")
    click.echo("-"*90)
    for invite in invites:
        uses = f"{invite.get('uses', 0)}/{invite.get('max_uses', 1)}"
        click.echo(
            f"{invite['code']:<16} {invite['league']:<8} {invite['league_role']:<20} "
            f"{uses:<8} {invite.get('expires_at') or '-':<22} {invite['status']}"
        )


@invites_group.command('create')
@click.option('--league', help='League the new user joins (defaults to the default league)')
@click.option('--league-role', type=click.Choice([r.value for r in LeagueRole]), default=LeagueRole.OFFICIAL.value,
              show_default=True)
@click.option('--department', help='Department label for redeemed users')
@click.option('--max-uses', type=int, default=1, show_default=True)
@click.option('--expires', 'expires_at', help='Expiry date (YYYY-MM-DD, end of day UTC) or ISO timestamp')
@click.option('--note', default='', help='Free-text note')
@with_appcontext
def create_invite_cli(league, league_role, department, max_uses, expires_at, note):
    """Issue an invite code."""
    try:
        invite = InviteService(get_store()).create_invite(
            created_by=CLI_ACTOR,
            league=league,
            league_role=league_role,
            department=department,
            max_uses=max_uses,
            expires_at=expires_at,
            note=note,
        )
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created invite {invite['code']}")
    click.echo(f"     {invite['league']} {invite['league_role']}, max uses {invite['max_uses']}, "
               f"expires {invite['expires_at'] or 'never'}")


@invites_group.command('revoke')
@click.argument('code')
@with_appcontext
def revoke_invite_cli(code):
    """Deactivate an invite code."""
    try:
        invite = InviteService(get_store()).revoke(code, actor=CLI_ACTOR)
    except (NotFoundError, InviteError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Revoked invite {invite['code']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(lockouts_group)
    app.cli.add_command(invites_group)
