#!/usr/bin/env python3
"""Teste rápido do Notifier (toasts)."""
import io
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from helpdesk_notify import ERROR, SUCCESS, Notifier, print_toast


def test_notify_e_drain():
    n = Notifier()
    t = n.notify(SUCCESS, 'Chamado #1 aprovado com sucesso!')
    assert t['title'] == 'Sucesso!'
    assert n.ultima() == t
    assert n.drain() == [t]
    assert n.pendentes == []


def test_tipo_invalido():
    with pytest.raises(ValueError):
        Notifier().notify('fatal', 'x')


def test_subscribe_e_cancelar():
    n = Notifier()
    recebidos = []
    cancelar = n.subscribe(recebidos.append)
    n.notify(ERROR, 'falhou')
    cancelar()
    n.notify(ERROR, 'de novo')
    assert [t['message'] for t in recebidos] == ['falhou']


def test_print_toast():
    buf = io.StringIO()
    print_toast({'kind': ERROR, 'title': 'Erro!', 'message': 'Sem conexão'}, file=buf)
    assert buf.getvalue() == '[Erro!] Sem conexão\n'


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
