from functools import wraps

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from app import db as db_module
from app.auth.context import AuthContext, parse_factory, parse_profile, parse_roles

auth_bp = Blueprint('auth', __name__)

SESSION_KEY = 'auth'


def _load_auth_context(user: dict) -> AuthContext:
    """Fetch the profile, factory roles and factory of a signed-in user.

    Invalid or missing records are logged and left out so the user can still
    reach pages that do not depend on them.
    """

    user_id = user['user_id']
    profile = None
    record, error = db_module.fetch_profile(user_id)
    if error:
        current_app.logger.warning("Failed to fetch profile for %s: %s", user_id, error)
    elif record is not None:
        profile, error = parse_profile(record)
        if error:
            current_app.logger.warning("Ignoring profile for %s: %s", user_id, error)

    factory_id = profile.factory_id if profile else None

    roles = []
    records, error = db_module.fetch_user_roles(user_id)
    if error:
        current_app.logger.warning("Failed to fetch roles for %s: %s", user_id, error)
    else:
        parsed, error = parse_roles(records, factory_id)
        if error:
            current_app.logger.warning("Ignoring roles for %s: %s", user_id, error)
        else:
            roles = parsed

    factory = None
    if factory_id:
        record, error = db_module.fetch_factory(factory_id)
        if error:
            current_app.logger.warning("Failed to fetch factory %s: %s", factory_id, error)
        elif record is not None:
            factory, error = parse_factory(record)
            if error:
                current_app.logger.warning("Ignoring factory %s: %s", factory_id, error)

    return AuthContext(
        user_id=user_id,
        email=user.get('email'),
        profile=profile,
        roles=roles,
        factory=factory,
    )


def current_auth() -> AuthContext | None:
    """Return the signed-in user's context for this request."""

    if 'auth_context' not in g:
        g.auth_context = AuthContext.from_session(session.get(SESSION_KEY))
    return g.auth_context


def _deny_anonymous():
    if request.path.startswith('/api/') or request.is_json:
        abort(401)
    return redirect(url_for('auth.login'))


def login_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        if current_auth() is None:
            return _deny_anonymous()
        return view(**kwargs)

    return wrapped_view


def roles_required(*allowed_roles: str):
    def decorator(view):
        @wraps(view)
        def wrapped_view(**kwargs):
            ctx = current_auth()
            if ctx is None:
                return _deny_anonymous()
            if not ctx.has_any_role(allowed_roles):
                abort(403)
            return view(**kwargs)

        return wrapped_view

    return decorator


@auth_bp.route('/', methods=['GET', 'POST'])
@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = (request.form.get('email') or '').strip()
        password = request.form.get('password') or ''

        if email and password:
            user, error = db_module.sign_in_with_password(email, password)
            if user:
                ctx = _load_auth_context(user)
                session.clear()
                session[SESSION_KEY] = ctx.to_session()
                return redirect(url_for('main.home'))
            current_app.logger.warning("Sign-in failed for %s: %s", email, error)
        flash('Invalid credentials.')
    return render_template('login.html')


@auth_bp.route('/logout')
def logout():
    if session.get(SESSION_KEY):
        error = db_module.sign_out()
        if error:
            current_app.logger.warning(error)
    session.clear()
    g.pop('auth_context', None)
    return redirect(url_for('auth.login'))
