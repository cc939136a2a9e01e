# lms_exam/api/v1/endpoints/certificates.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from lms_exam.core.security import (
    GRADER_ROLES,
    get_current_admin,
    get_current_student,
    get_current_user,
)
from lms_exam.db.session import get_db
from lms_exam.models.user import User
from lms_exam.schemas.certificate import (
    CertificatePublic,
    RevokeCertificateRequest,
    VerificationResponse,
)
from lms_exam.services import certificate_service
from lms_exam.services.artifact_store import CertificateArtifactStore, get_artifact_store

router = APIRouter(prefix="/certificates", tags=["certificates"])


@router.get("/verify/{serial}", response_model=VerificationResponse)
def verify_certificate(
    serial: str,
    db: Session = Depends(get_db),
    store: CertificateArtifactStore = Depends(get_artifact_store),
):
    """
    公开验证接口：not_found / revoked / tampered / valid。
    """
    result = certificate_service.verify_certificate(db, serial, store=store)
    return VerificationResponse(
        valid=result.valid,
        status=result.status,
        reason=result.reason,
        certificate=(
            CertificatePublic.model_validate(result.certificate)
            if result.certificate is not None
            else None
        ),
    )


@router.get("/me", response_model=List[CertificatePublic])
def list_my_certificates(
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    return certificate_service.list_certificates_for_learner(db, current_student.id)


@router.get("/{serial}/download")
def download_certificate(
    serial: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: CertificateArtifactStore = Depends(get_artifact_store),
):
    certificate = certificate_service.get_certificate(db, serial)
    if certificate is None or (
        certificate.user_id != current_user.id and current_user.role not in GRADER_ROLES
    ):
        raise HTTPException(status_code=404, detail="Certificate not found")

    pdf_bytes = certificate_service.read_artifact(certificate, store=store)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={serial}.pdf"},
    )


@router.post("/{serial}/revoke", response_model=CertificatePublic)
def revoke_certificate(
    serial: str,
    payload: RevokeCertificateRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return certificate_service.revoke_certificate(
        db, serial, revoked_by=current_admin.id, reason=payload.reason
    )
