# app/services/admin.py
# Platform administration: organizations, plans and user profiles.

from flask import current_app
from sqlalchemy import func
from app import db
from app.models import Organization, OrganizationSettings, OrgMember, UserProfile
from app.utils import server_error

MAX_ORG_NAME_LENGTH = 100
MAX_FULL_NAME_LENGTH = 255


def list_organizations():
    member_counts = dict(
        db.session.query(OrgMember.org_id, func.count(OrgMember.id))
        .group_by(OrgMember.org_id)
        .all()
    )
    rows = (db.session.query(Organization, OrganizationSettings)
            .outerjoin(OrganizationSettings, OrganizationSettings.org_id == Organization.id)
            .order_by(Organization.created_at.desc())
            .all())

    organizations = []
    for org, settings in rows:
        data = org.to_dict()
        data['member_count'] = member_counts.get(org.id, 0)
        data['plan_name'] = settings.plan_name if settings else 'free'
        data['plan_status'] = settings.plan_status if settings else 'active'
        data['trial_ends_at'] = settings.trial_ends_at.isoformat() if settings and settings.trial_ends_at else None
        organizations.append(data)

    return {"success": True, "organizations": organizations}


def list_users():
    memberships = {}
    rows = (db.session.query(OrgMember, Organization.name)
            .join(Organization, Organization.id == OrgMember.org_id)
            .all())
    for membership, org_name in rows:
        memberships.setdefault(membership.user_id, []).append({
            "org_id": membership.org_id,
            "org_name": org_name,
            "role": membership.role,
        })

    users = []
    for profile in UserProfile.query.order_by(UserProfile.created_at.desc()).all():
        data = profile.to_dict()
        data['organizations'] = memberships.get(profile.id, [])
        users.append(data)

    return {"success": True, "users": users}


def update_plan(data):
    org_id = data.get('org_id')
    plan_name = data.get('plan_name')
    plan_status = data.get('plan_status')

    if not org_id or not plan_name or not plan_status:
        return {"success": False, "error": "org_id, plan_name and plan_status are required"}, 400
    if plan_name not in current_app.config['PLAN_NAMES']:
        return {"success": False,
                "error": f"plan_name must be one of: {', '.join(current_app.config['PLAN_NAMES'])}"}, 400
    if plan_status not in current_app.config['PLAN_STATUSES']:
        return {"success": False,
                "error": f"plan_status must be one of: {', '.join(current_app.config['PLAN_STATUSES'])}"}, 400

    if db.session.get(Organization, org_id) is None:
        return {"success": False, "error": "Organization not found"}, 404

    try:
        settings = db.session.get(OrganizationSettings, org_id)
        if settings is None:
            settings = OrganizationSettings(org_id=org_id)
            db.session.add(settings)
        settings.plan_name = plan_name
        settings.plan_status = plan_status
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating plan for org {org_id}")

    current_app.logger.info(f"Plan for org {org_id} set to {plan_name} ({plan_status})")
    return {"success": True, "settings": settings.to_dict()}


def update_org_name(data):
    org_id = data.get('org_id')
    name = (data.get('name') or '').strip()

    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    if not name:
        return {"success": False, "error": "Organization name cannot be empty"}, 400
    if len(name) > MAX_ORG_NAME_LENGTH:
        return {"success": False,
                "error": f"Organization name must be {MAX_ORG_NAME_LENGTH} characters or less"}, 400

    org = db.session.get(Organization, org_id)
    if org is None:
        return {"success": False, "error": "Organization not found"}, 404

    try:
        org.name = name
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error renaming org {org_id}")

    return {"success": True, "organization": org.to_dict()}


def _sync_supabase_full_name(user_id, full_name):
    """
    Pushes the new name into Supabase user_metadata.

    Without this, JIT provisioning reads the old name from the next JWT
    and overwrites the database change.
    """
    from supabase import create_client

    supabase_url = current_app.config.get('SUPABASE_URL')
    supabase_key = current_app.config.get('SUPABASE_SERVICE_ROLE_KEY')

    if not supabase_url or not supabase_key:
        current_app.logger.warning(
            "Supabase service key not configured - user_metadata not updated. "
            "The name change will be reverted by JIT provisioning on the user's next request."
        )
        return False

    try:
        supabase = create_client(supabase_url, supabase_key)
        supabase.auth.admin.update_user_by_id(user_id, {"user_metadata": {"full_name": full_name}})
        current_app.logger.info(f"Updated Supabase metadata for {user_id}: full_name={full_name}")
        return True
    except Exception as e:
        current_app.logger.error(f"Failed to update Supabase metadata for {user_id}: {str(e)}")
        return False


def update_username(data):
    user_id = data.get('user_id')
    full_name = (data.get('full_name') or '').strip()

    if not user_id:
        return {"success": False, "error": "user_id is required"}, 400
    if not full_name:
        return {"success": False, "error": "full_name cannot be empty"}, 400
    if len(full_name) > MAX_FULL_NAME_LENGTH:
        return {"success": False,
                "error": f"full_name must be {MAX_FULL_NAME_LENGTH} characters or less"}, 400

    profile = db.session.get(UserProfile, user_id)
    if profile is None:
        return {"success": False, "error": "User not found"}, 404

    try:
        profile.full_name = full_name
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating name for user {user_id}")

    synced = _sync_supabase_full_name(user_id, full_name)
    return {"success": True, "user": profile.to_dict(), "auth_metadata_synced": synced}
