"""Upload admission.

The gatekeeper runs two stages in order and stops at the first failure:

    authenticate -> classify

An upload without an identity is IGNORED (the endpoint answers as if no
file was sent). An upload from a known user with an unsupported type is
REJECTED and reported back. Nothing is written to disk by this module.
"""
import logging

from starlette.requests import HTTPConnection

from app.auth.session import IdentityLookup

from .classifier import classify
from .schemas import Admission, UploadRequest

logger = logging.getLogger(__name__)


class UploadGatekeeper:
    """Decides whether an upload may be stored, before any bytes are written."""

    def __init__(self, identity_lookup: IdentityLookup):
        self.identity_lookup = identity_lookup

    def admit(
        self,
        request: HTTPConnection,
        upload: UploadRequest,
    ) -> Admission:
        """Authenticate the sender, then classify the file.

        On acceptance ``upload.user_id`` is filled in with the identity.
        """
        user_id = self.identity_lookup.authenticate(request)
        if not user_id:
            logger.info("Upload ignored: no authenticated session")
            return Admission.ignore()

        classification = classify(upload.mime_type, upload.filename)
        if not classification.accepted:
            logger.warning(
                f"Upload rejected for user {user_id}: "
                f"filename={upload.filename!r} mime_type={upload.mime_type!r}"
            )
            return Admission.reject(user_id)

        upload.user_id = user_id
        return Admission.accept(classification.bucket, user_id)
