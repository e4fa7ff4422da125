# app/services/grants.py
# This file holds the logic for an organization's grant pipeline.

import csv
import io
from datetime import date
import requests
from flask import current_app
from sqlalchemy.exc import IntegrityError
from app import db
from app.models import Grant, GrantAISummary, GrantComment, TaskComment, GrantTask, ApprovalRequest, utcnow
from app.jwt_auth import require_org_member
from app.utils import parse_date, server_error
from app.services.notifications import send_notifications, build_grant_payload
from app.services.activity import record_activity, snapshot_grant, log_grant_changes

DATE_FIELDS = ('open_date', 'close_date', 'loi_deadline', 'internal_deadline')

UPDATABLE_FIELDS = (
    'notes', 'status', 'priority', 'assigned_to', 'description', 'title', 'agency',
    'program', 'aln', 'open_date', 'close_date', 'loi_deadline', 'internal_deadline',
)

CSV_COLUMNS = [
    ('Title', 'title'),
    ('Agency', 'agency'),
    ('ALN', 'aln'),
    ('Status', 'status'),
    ('Priority', 'priority'),
    ('Open Date', 'open_date'),
    ('Close Date', 'close_date'),
    ('LOI Deadline', 'loi_deadline'),
    ('Assigned To', 'assigned_to'),
    ('Notes', 'notes'),
    ('Saved At', 'saved_at'),
    ('External ID', 'external_id'),
    ('External Source', 'external_source'),
]


def _validate_pipeline_fields(data):
    """Returns an error string for an invalid status/priority, else None."""
    statuses = current_app.config['GRANT_STATUSES']
    priorities = current_app.config['GRANT_PRIORITIES']
    if 'status' in data and data['status'] not in statuses:
        return f"Invalid status. Must be one of: {', '.join(statuses)}"
    if 'priority' in data and data['priority'] not in priorities:
        return f"Invalid priority. Must be one of: {', '.join(priorities)}"
    return None


def get_grant_for_member(grant_id, user):
    """
    Loads a grant and checks the caller belongs to its organization.

    Returns:
        Grant, or an error tuple (dict, status)
    """
    grant = db.session.get(Grant, grant_id)
    if grant is None:
        return {"success": False, "error": "Grant not found"}, 404
    require_org_member(grant.org_id, user)
    return grant


def list_grants(org_id, user):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_member(org_id, user)

    try:
        grants = Grant.query.filter_by(org_id=org_id).order_by(Grant.saved_at.desc()).all()
        return {"success": True, "grants": [g.to_dict() for g in grants]}
    except Exception as e:
        return server_error(e, f"Error fetching grants for org {org_id}")


def export_grants_csv(org_id, user):
    """
    Returns (csv_text, filename) for the organization's pipeline,
    or an error tuple (dict, status).
    """
    result = list_grants(org_id, user)
    if isinstance(result, tuple):
        return result

    buffer = io.StringIO()
    # QUOTE_MINIMAL quotes values containing commas, quotes or newlines
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for grant in result['grants']:
        writer.writerow(['' if grant.get(field) is None else grant.get(field) for _, field in CSV_COLUMNS])

    filename = f"grants-export-{date.today().isoformat()}.csv"
    return buffer.getvalue(), filename


def save_grant(data, user):
    """Adds a grant to the organization's pipeline."""
    org_id = data.get('org_id')
    if not org_id or not data.get('external_id') or not data.get('title'):
        return {"success": False, "error": "Missing required fields: org_id, external_id, title"}, 400

    require_org_member(org_id, user)

    if data.get('user_id') and data['user_id'] != user.id:
        return {"success": False, "error": "Cannot save grants for other users"}, 403

    error = _validate_pipeline_fields(data)
    if error:
        return {"success": False, "error": error}, 400

    try:
        dates = {field: parse_date(data.get(field)) for field in DATE_FIELDS}
    except ValueError as e:
        return {"success": False, "error": f"Invalid date: {str(e)}"}, 400

    try:
        grant = Grant(
            org_id=org_id,
            user_id=user.id,
            external_source=data.get('external_source') or 'grants.gov',
            external_id=str(data['external_id']),
            title=data['title'],
            agency=data.get('agency'),
            program=data.get('program'),
            aln=data.get('aln'),
            description=data.get('description'),
            notes=data.get('notes'),
            status=data.get('status') or 'researching',
            priority=data.get('priority') or 'medium',
            assigned_to=data.get('assigned_to'),
            **dates
        )
        db.session.add(grant)
        db.session.flush()
        record_activity(grant, user.id, 'saved', f"Saved \"{grant.title}\" to the pipeline")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return {"success": False, "error": "Grant already saved"}, 409
    except Exception as e:
        db.session.rollback()
        return server_error(e, "Error saving grant")

    current_app.logger.info(f"Grant {grant.id} saved to org {org_id} by {user.id}")
    send_notifications(build_grant_payload('grant.saved', grant))

    return {"success": True, "grant": grant.to_dict(), "_status": 201}


def update_grant(grant_id, data, user):
    """Partial update limited to UPDATABLE_FIELDS."""
    updates = {field: data[field] for field in UPDATABLE_FIELDS if field in data}
    if not updates:
        return {"success": False, "error": "No valid fields to update"}, 400

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    error = _validate_pipeline_fields(updates)
    if error:
        return {"success": False, "error": error}, 400

    try:
        for field in DATE_FIELDS:
            if field in updates:
                updates[field] = parse_date(updates[field])
    except ValueError as e:
        return {"success": False, "error": f"Invalid date: {str(e)}"}, 400

    try:
        before = snapshot_grant(grant)
        if 'status' in updates and updates['status'] != grant.status:
            grant.stage_updated_at = utcnow()
        for field, value in updates.items():
            setattr(grant, field, value)
        log_grant_changes(grant, before, user.id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating grant {grant_id}")

    send_notifications(build_grant_payload('grant.updated', grant, metadata={'fields': sorted(updates)}))
    return {"success": True, "grant": grant.to_dict()}


def update_saved_status(grant_id, data, user):
    """Board quick-update: status, priority and assignee only."""
    updates = {field: data[field] for field in ('status', 'priority', 'assigned_to') if field in data}
    if not updates:
        return {"success": False, "error": "No fields to update"}, 400
    return update_grant(grant_id, updates, user)


def _detach_replies(model, *criteria):
    """Clears parent links so a thread's rows can be deleted in any order."""
    (model.query
     .filter(*criteria)
     .filter(model.parent_comment_id.isnot(None))
     .update({model.parent_comment_id: None}, synchronize_session=False))


def delete_grant(grant_id, user):
    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    try:
        _detach_replies(GrantComment, GrantComment.grant_id == grant.id)
        task_ids = db.select(GrantTask.id).where(GrantTask.grant_id == grant.id)
        _detach_replies(TaskComment, TaskComment.task_id.in_(task_ids))

        # Rows that reference the grant without an ORM cascade
        for request_row in ApprovalRequest.query.filter_by(grant_id=grant.id).all():
            db.session.delete(request_row)
        GrantAISummary.query.filter_by(grant_id=grant.id).delete(synchronize_session=False)
        db.session.delete(grant)
        db.session.commit()
        current_app.logger.info(f"Grant {grant_id} removed from pipeline by {user.id}")
        return {"success": True, "message": "Grant removed from pipeline"}
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error deleting grant {grant_id}")


# --- GRANTS.GOV PROXY ---

GRANTS_GOV_TIMEOUT_SECONDS = 25
MAX_SEARCH_ROWS = 50
SEARCH_FILTERS = ('keyword', 'fundingCategories', 'agencies', 'aln')


def _grants_gov_post(path, payload):
    """
    POSTs to the grants.gov API.

    Returns:
        dict: The decoded JSON body, or an error tuple (dict, status)
    """
    url = f"{current_app.config['GRANTS_GOV_API_URL']}/{path}"
    try:
        response = requests.post(url, json=payload, timeout=GRANTS_GOV_TIMEOUT_SECONDS)
    except requests.Timeout:
        current_app.logger.warning(f"grants.gov {path} timed out")
        return {"success": False, "error": "Request timeout - please try again"}, 504
    except requests.RequestException as e:
        current_app.logger.error(f"grants.gov {path} request failed: {str(e)}")
        return {"success": False, "error": "Failed to reach Grants.gov"}, 502

    if not response.ok:
        current_app.logger.error(f"grants.gov {path} error: {response.status_code} {response.reason}")
        return {"success": False, "error": "Failed to fetch from Grants.gov",
                "details": response.reason}, response.status_code

    try:
        body = response.json()
    except ValueError:
        current_app.logger.error(f"grants.gov {path} returned a non-JSON body")
        return {"success": False, "error": "Invalid response from Grants.gov"}, 502
    if not isinstance(body, dict):
        return {"success": False, "error": "Invalid response from Grants.gov"}, 502
    return body


def normalize_opportunity(hit):
    alns = hit.get('alnist') or []
    return {
        'id': hit.get('id') or hit.get('number'),
        'number': hit.get('number'),
        'title': hit.get('title'),
        'agency': hit.get('agencyName'),
        'openDate': hit.get('openDate'),
        'closeDate': hit.get('closeDate'),
        'status': hit.get('oppStatus'),
        'aln': alns[0] if alns else None,
    }


def normalize_opportunity_detail(detail):
    opportunity_id = detail.get('opportunityID')
    return {
        'id': opportunity_id,
        'number': detail.get('opportunityNumber'),
        'title': detail.get('opportunityTitle'),
        'agency': detail.get('agencyName'),
        'description': detail.get('description') or 'No description available.',
        'postDate': detail.get('postDate') or None,
        'closeDate': detail.get('closeDate') or None,
        'eligibility': detail.get('eligibleApplicants') or None,
        'fundingInstrument': detail.get('fundingInstrumentType') or None,
        'category': detail.get('categoryOfFundingActivity') or None,
        'estimatedFunding': detail.get('estimatedTotalProgramFunding') or None,
        'awardCeiling': detail.get('awardCeiling') or None,
        'awardFloor': detail.get('awardFloor') or None,
        'expectedAwards': detail.get('expectedNumberOfAwards') or None,
        'costSharing': detail.get('costSharingOrMatchingRequirement') or None,
        'grantsGovUrl': detail.get('grantsGovLink')
                        or f"https://www.grants.gov/search-results-detail/{opportunity_id}",
    }


def _as_int(value, default):
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValueError(value)
    return int(value)


def search_grants_gov(data):
    """Live opportunity search (grants.gov search2), normalized for the discover page."""
    try:
        rows = _as_int(data.get('rows'), 25)
    except (TypeError, ValueError):
        rows = 0
    if not 1 <= rows <= MAX_SEARCH_ROWS:
        return {"success": False, "error": f"rows must be between 1 and {MAX_SEARCH_ROWS}"}, 400

    try:
        start = _as_int(data.get('startRecordNum'), 0)
    except (TypeError, ValueError):
        start = -1
    if start < 0:
        return {"success": False, "error": "startRecordNum must be a non-negative integer"}, 400

    payload = {
        'oppStatuses': data.get('oppStatuses') or 'posted|forecasted',
        'rows': rows,
        'startRecordNum': start,
    }
    payload.update({key: data[key] for key in SEARCH_FILTERS if data.get(key)})

    body = _grants_gov_post('search2', payload)
    if isinstance(body, tuple):
        return body

    # search2 wraps its payload in "data"
    results = body.get('data') if isinstance(body.get('data'), dict) else body
    return {
        "success": True,
        "grants": [normalize_opportunity(hit) for hit in results.get('oppHits') or []],
        "totalCount": results.get('hitCount', 0),
        "startRecord": results.get('startRecord', start),
        "pageSize": rows,
    }


def get_grants_gov_details(opportunity_id):
    """Full opportunity record (grants.gov fetchOpportunity). Needs the numeric opportunity id."""
    if opportunity_id is None or str(opportunity_id).strip() == '':
        return {"success": False, "error": "Opportunity ID is required"}, 400

    try:
        numeric_id = int(str(opportunity_id).strip())
    except ValueError:
        return {
            "success": False,
            "error": "Opportunity ID must be numeric",
            "details": f"Received ID: \"{opportunity_id}\". Use the opportunity ID, not the opportunity number.",
        }, 400

    body = _grants_gov_post('fetchOpportunity', {'opportunityId': numeric_id})
    if isinstance(body, tuple):
        return body

    if not isinstance(body.get('data'), dict):
        current_app.logger.error(f"grants.gov fetchOpportunity {numeric_id}: response missing data object")
        return {"success": False, "error": "Invalid response from Grants.gov",
                "details": "Response missing data object"}, 502

    return {"success": True, "grant": normalize_opportunity_detail(body['data'])}
