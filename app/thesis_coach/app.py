"""
Thesis Coach - Flask Application
Routes for accounts, thesis proposal generation, the adaptive writing coach
and the admin audit log.

Run from the repository root with `python -m app.thesis_coach.app`
or `flask --app app.thesis_coach.app:create_app run`.
"""
import os

from flask import Blueprint, Flask, current_app, jsonify, request, session
from flask_cors import CORS

from .config import config
from .models import db, User
from .utils import (
    add_log,
    admin_required,
    clear_logs,
    create_user,
    get_current_user,
    get_logs,
    login_required,
    seed_users,
    verify_password,
)
from .services.coach_session import get_session_store
from .services.conversation import ROLE_SYSTEM
from .services.thesis_generator import (
    CATALOG,
    ThesisConfigurationError,
    ThesisGenerationError,
    generate_thesis_proposal,
)


bp = Blueprint('thesis_coach', __name__)


def create_app(config_name=None):
    """Build the Flask app, create tables and seed demo accounts."""
    app = Flask(__name__)
    app.config.from_object(config[config_name or os.getenv('FLASK_ENV', 'development')])

    db.init_app(app)
    CORS(app, resources={r"/*": {"origins": app.config['CORS_ALLOWED_ORIGINS']}})
    app.register_blueprint(bp)

    init_database(app)
    return app


def init_database(app):
    """Initialize database and seed accounts if needed."""
    with app.app_context():
        db.create_all()
        added = seed_users(app.config.get('SEED_USERS', []))
        app.logger.info(f"[DATABASE] Initialized successfully ({added} seed accounts added)")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ============================================================================
# AUTHENTICATION ROUTES
# ============================================================================

@bp.route('/register', methods=['POST'])
def register():
    """Create an account and log it in."""
    data = _json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    name = (data.get('name') or '').strip()

    if not email or not password or not name:
        return jsonify({'error': 'Email, name and password are required.'}), 400

    min_length = current_app.config.get('MIN_PASSWORD_LENGTH', 4)
    if len(password) < min_length:
        return jsonify({'error': f'Password must be at least {min_length} characters.'}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({'error': '此 Email 已被註冊'}), 409

    user = create_user(email, name, password)
    db.session.commit()

    session['user_id'] = user.id
    session['user_email'] = user.email
    session.permanent = True
    add_log(user.email, 'REGISTER', '新使用者註冊')
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@bp.route('/login', methods=['POST'])
def login():
    data = _json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        return jsonify({'error': 'Invalid email or password.'}), 401

    session['user_id'] = user.id
    session['user_email'] = user.email
    session.permanent = True
    add_log(user.email, 'LOGIN', '使用者登入成功')
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/logout', methods=['POST'])
def logout():
    """Log out the user and drop their coach session."""
    coach_session_id = session.get('coach_session_id')
    if coach_session_id:
        get_session_store().end(coach_session_id)
    session.clear()
    return jsonify({'success': True})


@bp.route('/me')
@login_required
def me():
    return jsonify({'user': get_current_user().to_dict()})


# ============================================================================
# THESIS PROPOSAL ROUTES
# ============================================================================

@bp.route('/thesis/options')
@login_required
def thesis_options():
    return jsonify(CATALOG)


@bp.route('/thesis/generate', methods=['POST'])
@login_required
def thesis_generate():
    """Generate a thesis proposal from the selected catalog ids."""
    user = get_current_user()
    data = _json_body()

    try:
        proposal = generate_thesis_proposal(
            tech=data.get('tech') or [],
            theory=data.get('theory') or [],
            target=data.get('target') or [],
            platform=data.get('platform') or [],
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except ThesisConfigurationError as e:
        add_log(user.email, 'ERROR', '論文生成失敗：API Key 未設定')
        return jsonify({'error': str(e)}), 503
    except ThesisGenerationError as e:
        add_log(user.email, 'ERROR', '論文生成失敗')
        return jsonify({'error': str(e)}), 502

    add_log(user.email, 'GENERATE_THESIS', f"生成題目: {proposal['title']}")
    return jsonify({'success': True, 'proposal': proposal})


# ============================================================================
# WRITING COACH ROUTES
# ============================================================================

def _coach_session_or_404(session_id: str):
    user = get_current_user()
    coach_session = get_session_store().get(session_id, owner_id=user.id)
    if coach_session is None:
        return user, None, (jsonify({'error': 'Coach session not found'}), 404)
    return user, coach_session, None


@bp.route('/coach/sessions', methods=['POST'])
@login_required
def start_coach_session():
    """Start a fresh coach session, replacing the user's previous one."""
    user = get_current_user()
    coach_session = get_session_store().create(owner_id=user.id)
    session['coach_session_id'] = coach_session.id
    return jsonify({'success': True, 'session': coach_session.to_dict()}), 201


@bp.route('/coach/sessions/<session_id>')
@login_required
def get_coach_session(session_id):
    _, coach_session, error = _coach_session_or_404(session_id)
    if error:
        return error
    return jsonify({'session': coach_session.to_dict()})


@bp.route('/coach/sessions/<session_id>/draft', methods=['PUT'])
@login_required
def update_draft(session_id):
    _, coach_session, error = _coach_session_or_404(session_id)
    if error:
        return error

    text = _json_body().get('text')
    if text is not None and not isinstance(text, str):
        return jsonify({'error': 'text must be a string'}), 400

    coach_session.update_draft(text or '')
    return jsonify({'success': True, 'learner_state': coach_session.mastery.snapshot()})


@bp.route('/coach/sessions/<session_id>/analyze', methods=['POST'])
@login_required
def analyze_draft(session_id):
    """Run the structural analysis on the current draft."""
    user, coach_session, error = _coach_session_or_404(session_id)
    if error:
        return error

    add_log(user.email, 'ANALYZE', f"觸發結構分析, 字數: {len(coach_session.draft_text)}")
    result = coach_session.analyze()
    if result is None:
        return jsonify({'error': 'Coach session has ended'}), 409

    add_log(user.email, 'ANALYZE_RESULT', result.diagnostic_text)
    return jsonify({
        'success': True,
        'analysis': result.to_dict(),
        'learner_state': coach_session.mastery.snapshot(),
    })


@bp.route('/coach/sessions/<session_id>/messages', methods=['POST'])
@login_required
def send_coach_message(session_id):
    """Send one chat message to the writing coach."""
    user, coach_session, error = _coach_session_or_404(session_id)
    if error:
        return error

    text = _json_body().get('text')
    if not isinstance(text, str) or not text.strip():
        return jsonify({'success': True, 'accepted': False, 'session': coach_session.to_dict()})

    if not coach_session.conversation.is_awaiting_response:
        add_log(user.email, 'CHAT_USER', f"提問: {text}")

    reply = coach_session.send_message(text)
    if reply is None:
        return jsonify({'success': True, 'accepted': False, 'session': coach_session.to_dict()})

    if reply.role == ROLE_SYSTEM:
        add_log(user.email, 'ERROR', 'AI Agent 連線失敗')
    else:
        add_log(user.email, 'CHAT_AI', f"AI 回覆: {reply.content[:50]}...")

    return jsonify({
        'success': True,
        'accepted': True,
        'reply': reply.to_dict(),
        'session': coach_session.to_dict(),
    })


@bp.route('/coach/sessions/<session_id>', methods=['DELETE'])
@login_required
def end_coach_session(session_id):
    _, coach_session, error = _coach_session_or_404(session_id)
    if error:
        return error

    get_session_store().end(coach_session.id)
    if session.get('coach_session_id') == coach_session.id:
        session.pop('coach_session_id')
    return jsonify({'success': True})


# ============================================================================
# ADMIN ROUTES
# ============================================================================

@bp.route('/admin/logs')
@admin_required
def admin_logs():
    return jsonify({'logs': [entry.to_dict() for entry in get_logs()]})


@bp.route('/admin/logs', methods=['DELETE'])
@admin_required
def admin_clear_logs():
    removed = clear_logs()
    return jsonify({'success': True, 'removed': removed})


@bp.route('/admin/users')
@admin_required
def admin_users():
    users = User.query.order_by(User.created_at).all()
    return jsonify({'users': [user.to_dict() for user in users]})


# ============================================================================
# HEALTH CHECK
# ============================================================================

@bp.route('/healthz')
def healthcheck():
    """Health check endpoint."""
    return jsonify({'status': 'ok'})


if __name__ == '__main__':
    # Relative imports need package context: start with python -m app.thesis_coach.app
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 1111)), debug=app.config.get('DEBUG', False))
