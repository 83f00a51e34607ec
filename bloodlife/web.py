"""
Flask JSON API over the BloodBank operations.

The routes hold no business rules: they parse the payload, call the
engine and serialize the result.
"""

import logging

import click
from flask import Blueprint, Flask, current_app, jsonify, request
from flask.logging import default_handler

from .config import Config
from .errors import BloodLifeError, ValidationError
from .service import BloodBank
from .storage import JsonFileStore, MemoryStore, seed_demo_data

api = Blueprint('api', __name__)


def get_bank():
    return current_app.extensions['bloodlife']


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data

# ============== DONOR ROUTES ==============

@api.route('/donors', methods=['GET'])
def list_donors():
    """API endpoint for donors"""
    donors = get_bank().list_donors(search=request.args.get('search'),
                                    blood_group=request.args.get('blood_group'))
    return jsonify(donors)


@api.route('/donors', methods=['POST'])
def register_donor():
    """Donor registration"""
    donor = get_bank().register_donor(_payload())
    return jsonify({'success': True, 'donor': donor}), 201


@api.route('/donors/<donor_id>', methods=['GET'])
def donor_details(donor_id):
    return jsonify(get_bank().get_donor(donor_id))


@api.route('/donors/<donor_id>', methods=['PATCH'])
def update_donor(donor_id):
    """Update donor information"""
    bank = get_bank()
    bank.update_donor(donor_id, _payload())
    return jsonify({'success': True, 'donor': bank.get_donor(donor_id)})

# ============== REQUEST ROUTES ==============

@api.route('/requests', methods=['GET'])
def list_requests():
    """Active (not completed) blood requests, newest first"""
    return jsonify(get_bank().list_requests(search=request.args.get('search')))


@api.route('/requests', methods=['POST'])
def post_request():
    request_data = get_bank().post_request(_payload())
    return jsonify({'success': True, 'request': request_data}), 201


@api.route('/requests/<request_id>', methods=['GET'])
def request_details(request_id):
    bank = get_bank()
    return jsonify({
        'request': bank.get_request(request_id),
        'matches': bank.list_matches(request_id=request_id),
    })


@api.route('/requests/<request_id>', methods=['PATCH'])
def update_request(request_id):
    bank = get_bank()
    bank.update_request(request_id, _payload())
    return jsonify({'success': True, 'request': bank.get_request(request_id)})


@api.route('/requests/<request_id>/candidates', methods=['GET'])
def request_candidates(request_id):
    """Eligible donors and usable stock for one request"""
    return jsonify(get_bank().find_candidates(request_id))


@api.route('/requests/<request_id>/matches', methods=['POST'])
def record_match(request_id):
    """Record contact, donation or decline for a donor"""
    data = _payload()
    if not data.get('donor_id') or not data.get('status'):
        raise ValidationError('donor_id and status are required')
    bank = get_bank()
    match = bank.record_match(request_id, data['donor_id'], data['status'])
    return jsonify({'success': True, 'match': match})

# ============== INVENTORY ROUTES ==============

@api.route('/inventory', methods=['GET'])
def list_inventory():
    """Units filtered by group/status/search, with expiry summary"""
    bank = get_bank()
    units = bank.list_units(blood_group=request.args.get('blood_group'),
                            status=request.args.get('status'),
                            search=request.args.get('search'))
    return jsonify({
        'units': units,
        'summary': bank.dashboard()['inventory'],
    })


@api.route('/inventory', methods=['POST'])
def add_inventory_unit():
    unit = get_bank().add_inventory_unit(_payload())
    return jsonify({'success': True, 'unit': unit}), 201


@api.route('/inventory/<unit_id>', methods=['PATCH'])
def update_inventory_unit(unit_id):
    bank = get_bank()
    bank.update_inventory_unit(unit_id, _payload())
    return jsonify({'success': True, 'unit': bank.get_unit(unit_id)})


@api.route('/inventory/<unit_id>/reserve', methods=['POST'])
def reserve_unit(unit_id):
    data = _payload()
    if not data.get('request_id'):
        raise ValidationError('request_id is required')
    bank = get_bank()
    bank.reserve_unit(unit_id, data['request_id'])
    return jsonify({'success': True, 'unit': bank.get_unit(unit_id)})


@api.route('/inventory/<unit_id>/release', methods=['POST'])
def release_unit(unit_id):
    bank = get_bank()
    bank.release_unit(unit_id)
    return jsonify({'success': True, 'unit': bank.get_unit(unit_id)})


@api.route('/inventory/<unit_id>/use', methods=['POST'])
def use_unit(unit_id):
    bank = get_bank()
    bank.mark_unit_used(unit_id)
    return jsonify({'success': True, 'unit': bank.get_unit(unit_id)})


@api.route('/inventory/<unit_id>/discard', methods=['POST'])
def discard_unit(unit_id):
    bank = get_bank()
    bank.discard_unit(unit_id)
    return jsonify({'success': True, 'unit': bank.get_unit(unit_id)})

# ============== DASHBOARD ==============

@api.route('/dashboard/stats', methods=['GET'])
def dashboard_stats():
    """Dashboard statistics, recomputed on every call"""
    return jsonify({'success': True, 'stats': get_bank().dashboard()})


@api.errorhandler(BloodLifeError)
def handle_engine_error(error):
    if error.status_code >= 500:
        current_app.logger.error("Request %s %s failed: %s", request.method, request.path, error)
        message = 'Something went wrong, please try again.'
    else:
        message = str(error)
    return jsonify({'success': False, 'message': message}), error.status_code

# ============== APP FACTORY ==============

def _build_store(config):
    if config['STORE_BACKEND'] == 'memory':
        return MemoryStore()
    return JsonFileStore(config['DATA_DIR'])


def register_commands(app):
    @app.cli.command('init-db')
    @click.option('--reset', is_flag=True, help='Replace existing records with the sample data')
    def init_db(reset):
        """Seed empty collections with sample donors, requests and units."""
        bank = app.extensions['bloodlife']
        seeded = seed_demo_data(bank.store, now=bank.now(), reset=reset)
        if seeded:
            click.echo(f"Seeded: {', '.join(seeded)}")
        else:
            click.echo('All collections already hold data, nothing seeded.')

    @app.cli.command('discard-expired')
    def discard_expired():
        """Mark available units past their expiry as discarded."""
        codes = app.extensions['bloodlife'].discard_expired_units()
        click.echo(f"Discarded {len(codes)} expired unit(s)")


def create_app(config_object=Config, store=None, clock=None):
    """Flask application factory"""
    app = Flask(__name__)
    app.config.from_object(config_object)

    bloodlife_logger = logging.getLogger('bloodlife')
    bloodlife_logger.setLevel(app.config['LOG_LEVEL'])
    if default_handler not in bloodlife_logger.handlers:
        bloodlife_logger.addHandler(default_handler)

    app.extensions['bloodlife'] = BloodBank(
        store if store is not None else _build_store(app.config),
        strict_references=app.config['STRICT_REFERENCES'],
        seed_on_first_run=app.config['SEED_ON_FIRST_RUN'],
        clock=clock,
    )
    app.register_blueprint(api, url_prefix='/api')
    register_commands(app)
    return app
