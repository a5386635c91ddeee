"""Exceções do dashboard de chamados."""


class HelpdeskError(Exception):
    """Base para erros do dashboard."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(HelpdeskError):
    """Validação local falhou (ex.: motivo curto). Nenhuma requisição é feita."""
    pass


class RequestError(HelpdeskError):
    """Resposta não-2xx do backend ou falha de rede.

    status_code é None quando a requisição nem chegou ao servidor (conexão/timeout).
    """

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_connection_error(self):
        return self.status_code is None


class AccessDeniedError(HelpdeskError):
    """Perfil do usuário não permite a visão/ação pedida."""
    pass
