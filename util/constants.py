class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    UPLOADS = V1 + "/uploads"
    UPLOAD_CHUNK = UPLOADS + "/{session_id}/chunks"
    COMPLETE_UPLOAD = UPLOADS + "/{session_id}/complete"
    CONVERSIONS = V1 + "/conversions"
    CONVERT_LOCAL = CONVERSIONS + "/local"
    CONVERSION_STATUS = CONVERSIONS + "/{job_id}"
    CONVERSION_EVENTS = CONVERSIONS + "/{job_id}/events"
    FILES = V1 + "/files"
    FILE = FILES + "/{file_id}"


# Client-side chunking target; keeps memory bounded and progress frequent.
CHUNK_SIZE = 256 * 1024

# Job progress anchors per stage.
PROGRESS_DOWNLOAD_START = 10
PROGRESS_CONVERT_START = 30
PROGRESS_UPLOAD_START = 70
PROGRESS_DONE = 100
CONVERT_SPAN = 0.4

NOT_FOUND_DETAIL = "not found"

# Blob ids are uuid4 hex; anything else never names a stored file.
BLOB_ID_PATTERN = r"^[0-9a-f]{32}$"
