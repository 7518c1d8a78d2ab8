from __future__ import annotations


class CollabrioError(Exception):
  status_code = 400
  code = "error"

  def __init__(self, message: str | None = None) -> None:
    self.message = message or self.__class__.__name__
    super().__init__(self.message)


class NotAuthenticated(CollabrioError):
  status_code = 401
  code = "not_authenticated"


class NotAuthorized(CollabrioError):
  status_code = 403
  code = "not_authorized"


class NotFound(CollabrioError):
  status_code = 404
  code = "not_found"


class InvalidColumn(CollabrioError):
  status_code = 400
  code = "invalid_column"


class InvalidStatus(CollabrioError):
  status_code = 400
  code = "invalid_status"


class StoreWriteFailure(CollabrioError):
  status_code = 503
  code = "store_write_failure"


class UploadFailure(CollabrioError):
  status_code = 502
  code = "upload_failure"


class EmailDeliveryFailure(CollabrioError):
  status_code = 502
  code = "email_delivery_failure"

  def __init__(self, message: str | None = None, *, recipient: str | None = None) -> None:
    super().__init__(message)
    self.recipient = recipient


class DocumentTooLarge(UploadFailure):
  status_code = 413
  code = "document_too_large"


class InvalidRequest(CollabrioError):
  status_code = 400
  code = "invalid_request"


class Conflict(CollabrioError):
  status_code = 409
  code = "conflict"


class CreatorRequired(CollabrioError):
  status_code = 400
  code = "creator_required"
