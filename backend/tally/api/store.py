from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from tally import db, socketio
from tally.models import Room, Participant


store = Blueprint('store', __name__)

TABLES = {
    'rooms': Room,
    'participants': Participant,
}


def _model_or_404(table):
    model = TABLES.get(table)
    if model is None:
        return None, (jsonify({'error': f'Unknown table {table}'}), 404)
    return model, None


def _match_from_args(model):
    match = request.args.to_dict()
    unknown = set(match) - set(model.fields)
    if unknown:
        return None, (jsonify({'error': f"Unknown column(s): {', '.join(sorted(unknown))}"}), 400)
    return match, None


def _query(model, match):
    return model.query.filter_by(**match)


def _emit_change(event, row):
    if isinstance(row, Participant):
        socketio.emit(
            'participant_change',
            {'event': event, 'record': row.to_dict()},
            to=f"room:{row.room_code}",
            namespace='/ws',
        )


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[store-commit-failed] {exc}")
        raise


@store.route('/<string:table>', methods=['GET'])
def select_rows(table):
    model, err = _model_or_404(table)
    if err:
        return err
    match, err = _match_from_args(model)
    if err:
        return err
    return jsonify([row.to_dict() for row in _query(model, match).all()])


@store.route('/<string:table>/count', methods=['GET'])
def count_rows(table):
    model, err = _model_or_404(table)
    if err:
        return err
    match, err = _match_from_args(model)
    if err:
        return err
    return jsonify({'count': _query(model, match).count()})


@store.route('/<string:table>', methods=['POST'])
def insert_row(table):
    model, err = _model_or_404(table)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if any(not data.get(col) for col in model.key_columns):
        return jsonify({'error': f"Key columns {', '.join(model.key_columns)} are required"}), 400
    key = tuple(str(data[col]) for col in model.key_columns)
    if db.session.get(model, key if len(key) > 1 else key[0]) is not None:
        return jsonify({'error': 'Duplicate key'}), 409
    row = model()
    try:
        row.apply(data)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    db.session.add(row)
    try:
        _commit()
    except IntegrityError:
        return jsonify({'error': 'Constraint violation'}), 409
    current_app.logger.info(f"[insert] table={table} key={key}")
    _emit_change('INSERT', row)
    return jsonify(row.to_dict()), 201


@store.route('/<string:table>', methods=['PUT'])
def upsert_row(table):
    model, err = _model_or_404(table)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if any(not data.get(col) for col in model.key_columns):
        return jsonify({'error': f"Key columns {', '.join(model.key_columns)} are required"}), 400
    key = tuple(str(data[col]) for col in model.key_columns)
    row = db.session.get(model, key if len(key) > 1 else key[0])
    event = 'UPDATE'
    if row is None:
        row = model()
        event = 'INSERT'
        db.session.add(row)
    try:
        row.apply(data)
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400
    try:
        _commit()
    except IntegrityError:
        return jsonify({'error': 'Constraint violation'}), 409
    current_app.logger.info(f"[upsert] table={table} key={key} event={event}")
    _emit_change(event, row)
    return jsonify(row.to_dict()), 200


@store.route('/<string:table>', methods=['PATCH'])
def update_rows(table):
    model, err = _model_or_404(table)
    if err:
        return err
    match, err = _match_from_args(model)
    if err:
        return err
    # Updates address single rows by key
    if any(not match.get(col) for col in model.key_columns):
        return jsonify({'error': f"Key columns {', '.join(model.key_columns)} are required"}), 400
    changes = request.get_json(silent=True) or {}
    if set(changes) & set(model.key_columns):
        return jsonify({'error': 'Key columns cannot be changed'}), 400
    unknown = set(changes) - set(model.fields)
    if unknown:
        return jsonify({'error': f"Unknown column(s): {', '.join(sorted(unknown))}"}), 400
    rows = _query(model, match).all()
    try:
        for row in rows:
            row.apply(changes)
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400
    try:
        _commit()
    except SQLAlchemyError:
        return jsonify({'error': 'Update failed'}), 409
    current_app.logger.info(f"[update] table={table} match={match} rows={len(rows)}")
    for row in rows:
        _emit_change('UPDATE', row)
    return jsonify([row.to_dict() for row in rows])
