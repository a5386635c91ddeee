"""
Notificações (toasts) do dashboard.

Cada tela recebe um Notifier e chama notify(kind, message). A apresentação decide como exibir:
o CLI imprime, a versão web devolve as notificações pendentes no JSON da resposta.
"""

import sys

SUCCESS = 'success'
ERROR = 'error'
WARNING = 'warning'
INFO = 'info'

ALERT_STYLES = {
    SUCCESS: {'title': 'Sucesso!', 'color': '#16a34a'},
    ERROR: {'title': 'Erro!', 'color': '#dc2626'},
    WARNING: {'title': 'Atenção!', 'color': '#ea580c'},
    INFO: {'title': 'Informação', 'color': '#3b82f6'},
}


class Notifier:
    """Fila de notificações em memória com ouvintes opcionais."""

    def __init__(self):
        self._pendentes = []
        self._listeners = []

    def notify(self, kind, message):
        if kind not in ALERT_STYLES:
            raise ValueError(f'Tipo de notificação inválido: {kind}')
        style = ALERT_STYLES[kind]
        toast = {
            'kind': kind,
            'title': style['title'],
            'color': style['color'],
            'message': message,
        }
        self._pendentes.append(toast)
        for listener in list(self._listeners):
            listener(toast)
        return toast

    def subscribe(self, listener):
        """Registra listener(toast); retorna função para cancelar a inscrição."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def drain(self):
        """Retorna e limpa as notificações pendentes."""
        out, self._pendentes = self._pendentes, []
        return out

    @property
    def pendentes(self):
        return list(self._pendentes)

    def ultima(self):
        return self._pendentes[-1] if self._pendentes else None


def print_toast(toast, file=None):
    """Imprime um toast no terminal: '[Sucesso!] Chamado #123 aprovado com sucesso!'."""
    out = file or (sys.stderr if toast['kind'] in (ERROR, WARNING) else sys.stdout)
    print(f'[{toast["title"]}] {toast["message"]}', file=out)
