from fastapi import HTTPException, status


# ── Erreurs métier (remontées telles quelles à l'appelant) ────────────────────
class MissionError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(MissionError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Ressource"):
        super().__init__(f"{resource} introuvable")


class Unauthorized(MissionError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTransition(MissionError):
    status_code = status.HTTP_409_CONFLICT


class InvalidInput(MissionError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ExhaustedRetries(MissionError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StoreTimeout(MissionError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class StoreUnavailable(MissionError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class DuplicateKey(MissionError):
    """Violation d'un index unique : l'appelant peut réessayer avec un autre code."""
    status_code = status.HTTP_409_CONFLICT


# ── Authentification ──────────────────────────────────────────────────────────
def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Identifiants invalides ou token expiré",
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden_exception(detail: str = "Accès refusé") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail,
    )
