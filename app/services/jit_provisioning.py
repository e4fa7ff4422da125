# app/services/jit_provisioning.py
"""
Just-in-Time User Provisioning Service

Ensures that authenticated users (verified via Supabase JWT) have a
matching row in user_profiles, so org memberships, approvals and 2FA
state can reference them.

Sync Strategy:
- Sync email and full_name on every request (only commit when changed)
- Use UUID from JWT 'sub' claim for lookups (primary key)
- is_platform_admin is owned by the database, never by the token
- Fail authentication if provisioning fails (strict mode)
"""

from flask import current_app
from app import db
from app.models import UserProfile
from sqlalchemy.exc import IntegrityError, OperationalError


class JITProvisioningError(Exception):
    """Custom exception for JIT provisioning failures"""
    def __init__(self, message, original_error=None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


def ensure_user_synced(user_id, email, full_name):
    """
    Ensures a profile exists for the user and its metadata is synchronized.

    Args:
        user_id (str): Supabase UUID from JWT 'sub' claim
        email (str): Email from JWT 'email' claim
        full_name (str): Display name from JWT 'user_metadata.full_name'

    Returns:
        UserProfile: The synchronized profile

    Raises:
        JITProvisioningError: If database sync fails
    """
    try:
        profile = db.session.get(UserProfile, user_id)

        if profile is None:
            current_app.logger.info(
                f"JIT Provisioning: Creating profile for {email} (ID: {user_id})"
            )
            try:
                profile = UserProfile(id=user_id, email=email, full_name=full_name)
                db.session.add(profile)
                db.session.commit()
                return profile

            except IntegrityError as e:
                # Another request created the profile first
                db.session.rollback()
                current_app.logger.warning(
                    f"JIT Provisioning: Race condition detected for {email}. "
                    f"Retrying query. Error: {str(e)}"
                )
                profile = db.session.get(UserProfile, user_id)
                if profile is None:
                    raise JITProvisioningError(
                        f"Failed to create profile for {email} due to integrity constraint",
                        original_error=e
                    )

        changes = []
        if profile.email != email:
            changes.append(f"email: {profile.email} → {email}")
            profile.email = email
        if full_name and profile.full_name != full_name:
            changes.append(f"full_name: {profile.full_name} → {full_name}")
            profile.full_name = full_name

        if changes:
            current_app.logger.info(
                f"JIT Provisioning: Syncing metadata for {user_id}. "
                f"Changes: {', '.join(changes)}"
            )
            db.session.commit()

        return profile

    except OperationalError as e:
        db.session.rollback()
        current_app.logger.error(
            f"JIT Provisioning: Database connection error for user {user_id}. "
            f"Error: {str(e)}"
        )
        raise JITProvisioningError(
            "Database connection failed during user provisioning",
            original_error=e
        )

    except JITProvisioningError:
        raise

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(
            f"JIT Provisioning: Unexpected error syncing user {user_id}. "
            f"Error: {str(e)}",
            exc_info=True
        )
        raise JITProvisioningError(
            f"Unexpected error during user provisioning: {str(e)}",
            original_error=e
        )
