"""File upload routes backed by DigitalOcean Spaces."""
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from ..deps import get_current_user
from ..services import storage, users


router = APIRouter(prefix="/api/upload", tags=["upload"])


def get_storage() -> storage.SpacesStorage:
    return storage.SpacesStorage.from_env()


def _store(spaces: storage.SpacesStorage, upload: UploadFile,
           workspace: Optional[str], channel: Optional[str]) -> dict:
    content = upload.file.read()
    return spaces.upload_file(
        content, upload.filename or "file", upload.content_type,
        workspace=workspace, channel=channel,
    )


@router.post("/file", status_code=201)
def upload_file(file: UploadFile = File(...), workspace: Optional[str] = Form(None),
                channel: Optional[str] = Form(None),
                user: users.User = Depends(get_current_user),
                spaces: storage.SpacesStorage = Depends(get_storage)):
    return {"success": True, "file": _store(spaces, file, workspace, channel)}


@router.post("/files", status_code=201)
def upload_files(files: List[UploadFile] = File(...), workspace: Optional[str] = Form(None),
                 channel: Optional[str] = Form(None),
                 user: users.User = Depends(get_current_user),
                 spaces: storage.SpacesStorage = Depends(get_storage)):
    if len(files) > storage.MAX_FILES_PER_REQUEST:
        raise HTTPException(
            status_code=400,
            detail=f"At most {storage.MAX_FILES_PER_REQUEST} files can be uploaded at once"
        )
    # Whole batch is validated before any upload
    for f in files:
        f.file.seek(0, 2)
        storage.validate_upload(f.content_type, f.file.tell())
        f.file.seek(0)

    uploaded = [_store(spaces, f, workspace, channel) for f in files]
    return {"success": True, "files": uploaded, "count": len(uploaded)}


@router.delete("/file/{key:path}")
def delete_file(key: str, user: users.User = Depends(get_current_user),
                spaces: storage.SpacesStorage = Depends(get_storage)):
    spaces.delete_file(key)
    return {"success": True, "message": "File deleted successfully", "key": key}


@router.get("/file-info/{key:path}")
def file_info(key: str, user: users.User = Depends(get_current_user),
              spaces: storage.SpacesStorage = Depends(get_storage)):
    info = spaces.get_file_metadata(key)
    if not info:
        raise HTTPException(status_code=404, detail="File not found")
    return {"success": True, "file": info}


@router.get("/signed-url/{key:path}")
def signed_url(key: str, expires: int = Query(storage.SIGNED_URL_EXPIRY, ge=60, le=604800),
               user: users.User = Depends(get_current_user),
               spaces: storage.SpacesStorage = Depends(get_storage)):
    return {"success": True, "url": spaces.get_signed_url(key, expires), "expiresIn": expires}


@router.get("/status")
def status(user: users.User = Depends(get_current_user)):
    config = storage.get_spaces_config()
    return {
        "configured": config is not None,
        "bucket": config["bucket"] if config else None,
        "region": config["region"] if config else None,
        "cdn": config["cdn"] if config else None,
        "maxFileSize": storage.MAX_FILE_SIZE,
        "maxFiles": storage.MAX_FILES_PER_REQUEST,
    }
