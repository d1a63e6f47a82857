"""
Authentication Module
JWT login, token verification, logout and user administration
"""

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, create_access_token, get_jwt, get_jwt_identity
import logging

from models import User, UserRole, RevokedToken, db
from services import UserService
from utils.permissions import role_required, visible_links, current_user_id

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)
user_service = UserService()


def _bearer_token():
    header = request.headers.get('Authorization', '')
    return header.split(' ', 1)[1].strip() if ' ' in header else header


def _token_cache():
    return current_app.extensions['token_cache']


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange username (or email) and password for an access token"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({
            'success': False,
            'error': 'INVALID_REQUEST',
            'message': 'Request body is required'
        }), 400

    login_name = (data.get('username') or data.get('email') or '').strip()
    password = data.get('password') or ''
    if not login_name or not password:
        return jsonify({
            'success': False,
            'error': 'MISSING_FIELDS',
            'message': 'Username and password are required'
        }), 400

    user = user_service.find_by_login(login_name)

    if not user or not user.check_password(password):
        logger.warning(f"LOGIN_FAILED: {login_name} IP: {request.remote_addr}")
        return jsonify({
            'success': False,
            'error': 'INVALID_CREDENTIALS',
            'message': 'Invalid username or password'
        }), 401

    if not user.is_active:
        logger.warning(f"LOGIN_INACTIVE_USER: {user.username}")
        return jsonify({
            'success': False,
            'error': 'USER_INACTIVE',
            'message': 'User account is not active'
        }), 403

    access_token = create_access_token(
        identity=user.username,
        additional_claims={'user_id': user.id, 'role': user.role.value}
    )

    user_service.record_login(user)

    logger.info(f"LOGIN_SUCCESS: User: {user.username}")
    return jsonify({
        'success': True,
        'access_token': access_token,
        'user': user.to_dict(),
        'navigation': visible_links(user.role)
    })


@auth_bp.route('/verify', methods=['GET'])
@jwt_required()
def verify():
    """Confirm the token still belongs to an active user, cached for a few seconds"""
    token = _bearer_token()
    cache = _token_cache()

    cached = cache.get(token)
    if cached is not None:
        return jsonify(cached)

    user = db.session.get(User, get_jwt().get('user_id'))
    if not user or not user.is_active:
        return jsonify({
            'success': False,
            'error': 'USER_INACTIVE',
            'message': 'User account is not active'
        }), 401

    result = {
        'success': True,
        'user': user.to_dict(),
        'navigation': visible_links(user.role)
    }
    cache.put(token, result)
    return jsonify(result)


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """Revoke the current token"""
    claims = get_jwt()
    revoked = RevokedToken()
    revoked.jti = claims['jti']
    revoked.user_id = claims.get('user_id')
    db.session.add(revoked)
    db.session.commit()

    _token_cache().invalidate(_bearer_token())
    logger.info(f"LOGOUT: User: {get_jwt_identity()}")
    return jsonify({'success': True, 'message': 'Successfully logged out'})


@auth_bp.route('/navigation', methods=['GET'])
@jwt_required()
def navigation():
    """Navigation entries visible to the current role"""
    return jsonify({'success': True, 'links': visible_links(get_jwt().get('role'))})


@auth_bp.route('/users', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_users():
    users = user_service.list_users()
    return jsonify({'success': True, 'users': [user.to_dict() for user in users]})


@auth_bp.route('/users', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_user():
    user = user_service.create_user(request.get_json(silent=True) or {}, performed_by=current_user_id())
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@auth_bp.route('/users/<int:user_id>/role', methods=['PATCH'])
@role_required(UserRole.ADMIN)
def change_user_role(user_id):
    data = request.get_json(silent=True) or {}
    user = user_service.change_role(user_id, data.get('role'), performed_by=current_user_id())
    return jsonify({'success': True, 'user': user.to_dict()})
