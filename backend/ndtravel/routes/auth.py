from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import select

from ndtravel import get_db
from ndtravel.models.authz import User
from ndtravel.services.policy import build_claims, current_actor, effective_permission_names

auth_bp = Blueprint('auth', __name__)


@auth_bp.post('/login')
def login():
    data = request.get_json(silent=True) or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=build_claims(user))
    return {'access_token': token}


@auth_bp.get('/me')
@jwt_required()
def me():
    actor = current_actor()
    user = get_db().get(User, actor.user_id)
    if not user:
        abort(404)
    return {
        'id': user.id,
        'full_name': user.full_name,
        'email': user.email,
        'role': actor.role_name,
        'level': actor.level,
        'permissions': sorted(effective_permission_names(actor)),
    }
