from .base import BaseDocument, ensure_utc, new_document_id, utcnow
from .alerts import AlertLocation, AlertSeverity, AlertType, PosterIdentity
