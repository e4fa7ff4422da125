# app/api/grants.py
# (Grant pipeline routes: saved grants, CSV export, grants.gov search, NOFO summaries.)

from flask import Blueprint, request, jsonify, g, Response
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.grants import (
    list_grants,
    export_grants_csv,
    save_grant,
    update_grant,
    delete_grant,
    update_saved_status,
    search_grants_gov,
    get_grants_gov_details,
)
from app.services.nofo import get_nofo_summary, generate_nofo_summary

bp = Blueprint('grants', __name__)


@bp.route('/grants', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_grants_route():
    """Lists the organization's pipeline. ?format=csv downloads a spreadsheet."""
    org_id = request.args.get('org_id')

    if request.args.get('format') == 'csv':
        result = export_grants_csv(org_id, g.current_user)
        if isinstance(result[1], int):
            return _handle_service_result(result)
        csv_text, filename = result
        return Response(
            csv_text,
            mimetype='text/csv',
            headers={'Content-Disposition': f'attachment; filename="{filename}"'}
        )

    result = list_grants(org_id, g.current_user)
    return _handle_service_result(result)


@bp.route('/grants', methods=['POST'])
@rate_limit('standard')
@require_jwt
def save_grant_route():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"success": False, "error": "No data provided in the request"}), 400
    result = save_grant(data, g.current_user)
    return _handle_service_result(result)


@bp.route('/grants/<string:grant_id>', methods=['PATCH'])
@rate_limit('standard')
@require_jwt
def update_grant_route(grant_id):
    data = request.get_json(silent=True) or {}
    result = update_grant(grant_id, data, g.current_user)
    return _handle_service_result(result)


@bp.route('/grants/<string:grant_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_grant_route(grant_id):
    result = delete_grant(grant_id, g.current_user)
    return _handle_service_result(result)


@bp.route('/saved/<string:grant_id>/status', methods=['PATCH'])
@rate_limit('standard')
@require_jwt
def update_saved_status_route(grant_id):
    """Pipeline board drag-and-drop: status, priority, assigned_to."""
    data = request.get_json(silent=True) or {}
    result = update_saved_status(grant_id, data, g.current_user)
    return _handle_service_result(result)


# --- GRANTS.GOV PROXY (public) ---

def _cached(result, max_age):
    response, status = _handle_service_result(result)
    if status == 200:
        response.headers['Cache-Control'] = f's-maxage={max_age}, stale-while-revalidate'
    return response, status


@bp.route('/grants/search', methods=['POST'])
@rate_limit('public')
def search_grants_route():
    result = search_grants_gov(request.get_json(silent=True) or {})
    return _cached(result, 60)


@bp.route('/grants/details', methods=['GET', 'POST'])
@rate_limit('public')
def grant_details_route():
    """?id=<opportunity id>, or a JSON body {"id": ...}."""
    opportunity_id = request.args.get('id')
    if opportunity_id is None and request.method == 'POST':
        opportunity_id = (request.get_json(silent=True) or {}).get('id')
    result = get_grants_gov_details(opportunity_id)
    return _cached(result, 300)


# --- NOFO SUMMARIES ---

@bp.route('/grants/<string:grant_id>/nofo-summary', methods=['GET'])
@rate_limit('standard')
@require_jwt
def get_nofo_summary_route(grant_id):
    result = get_nofo_summary(grant_id, g.current_user)
    return _handle_service_result(result, default_error_status=404)


@bp.route('/grants/<string:grant_id>/nofo-summary', methods=['POST'])
@rate_limit('auth')
@require_jwt
def generate_nofo_summary_route(grant_id):
    """Runs the NOFO text through the LLM. Uses the stricter 'auth' tier (paid API)."""
    data = request.get_json(silent=True) or {}
    result = generate_nofo_summary(grant_id, data, g.current_user)
    return _handle_service_result(result)
