from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from rankparty.models import User
from rankparty.services.games import list_active_games

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the RankParty game server!'})

@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "error": "Invalid username or password"}), 401

@main.route('/check_login', methods=['GET'])
@login_required
def check_login():
    return jsonify({"success": True, "user": current_user.to_dict()})

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})

@main.route('/games/active')
@login_required
def get_active_games():
    # Waiting or playing games the current user has joined
    games = list_active_games(current_user.id)
    return jsonify([game.to_dict(include_players=False) for game in games])
