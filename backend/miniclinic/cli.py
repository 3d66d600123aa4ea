# Operator commands for the clinic backend.
#
# Run from backend/ with FLASK_APP=wsgi.py:
#
#   flask system init [--password P] [--skip-users]   seed roles, permissions, one user per role
#   flask system reset-db --yes                       drop + recreate every table (local only)
#
#   flask users list
#   flask users create --username u --email e --role receptionist
#   flask users assign-role <username> <role>
#
#   flask perms list [--role r] [--module m]
#   flask perms check <username> <module.action>
#   flask perms grant|revoke <role> <module.action>
#
#   flask maintenance cleanup-sessions

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role, Permission, RolePermission
from .permissions import DEFAULT_ROLES, validate_permission
from .services import expenses_service, permission_service, session_service
from .services.auth_service import (
    create_user,
    create_default_roles,
    set_user_role,
    PasswordValidationError,
)
from .validation import ConflictError, ValidationError


DEFAULT_PASSWORD = "Password123!"


def _split_code(code: str) -> tuple[str, str]:
    module, sep, action = code.partition(".")
    if not sep or not module or not action:
        raise click.BadParameter(f"'{code}' is not a module.action permission code")
    if not validate_permission(module, action):
        raise click.BadParameter(f"Unknown permission '{code}'")
    return module, action


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for default users')
@click.option('--skip-users', is_flag=True, help='Only seed roles and permissions')
@with_appcontext
def init_system(password, skip_users):
    """
    Initialize roles, permissions and one default user per role.

    SECURITY: Change default passwords immediately in production!
    """
    click.echo("START Initializing clinic backend...")
    db.create_all()

    click.echo("\nLIST Creating roles...")
    create_default_roles()
    roles = db.session.query(Role).order_by(Role.name).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    click.echo("\nSECURITY Initializing permissions...")
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    categories = expenses_service.create_default_categories()
    click.echo(f"PASS Created {categories} expense categories")

    if skip_users:
        return

    click.echo("\nUSERS Creating default users...")
    for role_name, _, _ in DEFAULT_ROLES:
        username = role_name
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username=username,
                email=f"{username}@clinic.local",
                password=password,
                name=username.capitalize(),
                role_name=role_name,
            )
            click.echo(f"PASS Created user: {username} with role '{role_name}'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {e}")
            return

    click.echo("\nDONE Initialized. Change default passwords in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table. Local databases only."""
    if not yes:
        click.confirm(f"WARN Wipe {db.engine.url.render_as_string(hide_password=True)}?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Empty schema created. Next: flask system init")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Display name')
@click.option('--role', default=None, help='Role name (admin, doctor, receptionist, ...)')
@with_appcontext
def create_user_cli(username, email, password, name, role):
    """
    Create a new user.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(username=username, email=email, password=password, name=name, role_name=role)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{role or 'none'}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
    except (ValidationError, ConflictError, ValueError) as e:
        click.echo(f"FAIL Failed to create user: {e}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("=" * 90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        role_str = user.role.name if user.role else "none"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {role_str}")
    click.echo("=" * 90 + "\n")


@users_group.command('assign-role')
@click.argument('username')
@click.argument('role_name')
@with_appcontext
def assign_role_cli(username, role_name):
    """Bootstrap-only role assignment (no actor checks)."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    try:
        set_user_role(user.id, role_name)
        click.echo(f"PASS Assigned role '{role_name}' to '{username}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {e}")


@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@click.option('--module', help='Filter by module')
@with_appcontext
def list_permissions_cli(role, module):
    """List permissions, optionally filtered by role or module."""
    query = db.session.query(Permission)

    if role:
        role_obj = db.session.query(Role).filter_by(name=role).first()
        if not role_obj:
            click.echo(f"FAIL Role '{role}' not found")
            return
        if role_obj.grants_all_permissions:
            click.echo(f"NOTE Role '{role}' grants all permissions")
        query = query.join(RolePermission, RolePermission.permission_id == Permission.id).filter(
            RolePermission.role_id == role_obj.id
        )

    if module:
        query = query.filter(Permission.module == module)

    perms = query.order_by(Permission.module, Permission.action).all()

    click.echo(f"\n{'Code':<30} {'Description'}")
    click.echo("-" * 80)
    for perm in perms:
        click.echo(f"{perm.code:<30} {perm.description or ''}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('code')
@with_appcontext
def grant_permission_cli(role_name, code):
    """Grant a permission to a role."""
    module, action = _split_code(code)
    try:
        permission_service.grant_permission_to_role(role_name, module, action)
        click.echo(f"PASS Granted '{code}' to role '{role_name}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {e}")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('code')
@with_appcontext
def revoke_permission_cli(role_name, code):
    """Revoke a permission from a role."""
    module, action = _split_code(code)
    try:
        if permission_service.revoke_permission_from_role(role_name, module, action):
            click.echo(f"PASS Revoked '{code}' from role '{role_name}'")
        else:
            click.echo(f"WARN  Permission '{code}' was not granted to '{role_name}'")
    except ValueError as e:
        click.echo(f"FAIL Error: {e}")


@perms_group.command('check')
@click.argument('username')
@click.argument('code')
@with_appcontext
def check_permission_cli(username, code):
    """Check if a user has a specific permission."""
    module, action = _split_code(code)
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if permission_service.check_permission(user.id, module, action):
        click.echo(f"PASS User '{username}' HAS permission '{code}'")
    else:
        click.echo(f"FAIL User '{username}' DOES NOT HAVE permission '{code}'")

    click.echo(f"\nUser role: {user.role.name if user.role else 'none'}")
    click.echo(f"Total permissions: {len(permission_service.get_user_permissions(user.id))}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} old sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
