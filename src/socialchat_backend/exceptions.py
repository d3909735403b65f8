# src/socialchat_backend/exceptions.py


class ChatStoreError(Exception):
    """Falla de lectura/escritura en el store de documentos."""


class TransientStoreError(ChatStoreError):
    """
    Falla de red o disponibilidad. No se reintenta aquí: quien llama
    decide la política de reintentos.
    """


class SubscriptionError(ChatStoreError):
    """El canal en vivo de una suscripción falló (no un snapshot puntual)."""


class EnrichmentLookupError(Exception):
    """
    Falla al resolver el nombre de un participante. Solo se usa para
    registrar el error en el log; nunca llega al llamador.
    """

    def __init__(self, user_id: str, source: str, cause: Exception):
        super().__init__(f"lookup '{source}' para {user_id} falló: {cause}")
        self.user_id = user_id
        self.source = source
        self.cause = cause
