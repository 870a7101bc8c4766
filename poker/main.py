from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from poker import db
from poker.errors import SessionError
from poker.services.decks import deck_to_dict, list_decks

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the planning poker server!'})

@main.route('/api/decks')
def get_decks():
    return jsonify([deck_to_dict(d) for d in list_decks()])

@main.app_errorhandler(SessionError)
def handle_session_error(exc):
    return jsonify({'error': exc.message, 'type': exc.type}), exc.status_code

@main.app_errorhandler(SQLAlchemyError)
def handle_db_error(exc):
    db.session.rollback()
    current_app.logger.exception('[http-db-error]')
    return jsonify({'error': 'Room or story unavailable', 'type': 'NotFound'}), 404
