"""Verification document uploads for sellers and buyers, and guarded access to them."""
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.errors import Forbidden
from app.models.user import User, UserRole
from app.schemas.auth import UserResponse
from app.services.uploads import URL_PREFIX, discard, save_images, stored_path
from app.services.verification import DocumentContext, submit_documents

router = APIRouter(prefix="/api/upload", tags=["uploads"])
files_router = APIRouter(prefix="/uploads", tags=["uploads"])

_DOCUMENT_FIELDS = ("id_scan_url", "face_scan_url", "buyer_id_scan_url", "buyer_face_scan_url")


def _submit(db: Session, user: User, context: DocumentContext, id_scan, face_scan) -> User:
    id_url, face_url = save_images(id_scan, face_scan)
    try:
        return submit_documents(db, user, context, id_scan_url=id_url, face_scan_url=face_url)
    except Exception:
        discard([id_url, face_url])
        raise


@router.post("/verification", response_model=UserResponse)
def upload_seller_verification(
    id_scan: UploadFile | None = File(None, alias="idScan"),
    face_scan: UploadFile | None = File(None, alias="faceScan"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Seller ID and face scans. Either file may be sent on its own."""
    user = _submit(db, current_user, DocumentContext.seller, id_scan, face_scan)
    return UserResponse.model_validate(user)


@router.post("/buyer-verification", response_model=UserResponse)
def upload_buyer_verification(
    buyer_id_scan: UploadFile | None = File(None, alias="buyerIdScan"),
    buyer_face_scan: UploadFile | None = File(None, alias="buyerFaceScan"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = _submit(db, current_user, DocumentContext.buyer, buyer_id_scan, buyer_face_scan)
    return UserResponse.model_validate(user)


@files_router.get("/{name}")
def get_document(name: str, current_user: User = Depends(get_current_user)):
    """Serve a stored scan to its owner or to an admin."""
    url = URL_PREFIX + name
    owns = any(getattr(current_user, field) == url for field in _DOCUMENT_FIELDS)
    if not owns and current_user.role != UserRole.admin:
        raise Forbidden("Cannot access another user's documents")
    return FileResponse(stored_path(name))
