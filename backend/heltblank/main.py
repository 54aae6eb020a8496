from flask import Blueprint, jsonify

from heltblank import get_registry

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Backend server for Helt Blank'})


@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'sessions': len(get_registry())})
