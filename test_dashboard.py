#!/usr/bin/env python3
"""
Testes do CLI (helpdesk_dashboard.main): listagens, export HTML, ações e códigos de saída
(0 ok, 1 falha, 2 acesso negado). O backend é simulado com unittest.mock.patch.
Rode: python test_dashboard.py
"""
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

import helpdesk_dashboard


FILA = [{'id_chamado': 123, 'titulo_chamado': 'Impressora travada', 'descricao_status_chamado': 'Aberto',
         'prioridade_chamado': 'alta'}]


def test_aprovacao_com_export_html(tmp_path, capsys):
    saida = tmp_path / 'aprovacao.html'
    with patch('helpdesk_api.fetch_chamados_aprovacao', return_value=FILA) as mock_fetch:
        code = helpdesk_dashboard.main(['--email', 'gestor@empresa.com', '--nivel', '3',
                                        'aprovacao', '--html', str(saida)])
    assert code == 0
    mock_fetch.assert_called_once_with('gestor@empresa.com')
    assert 'Impressora travada' in capsys.readouterr().out
    page = saida.read_text(encoding='utf-8')
    assert 'Chamados para Aprovação' in page
    assert 'Impressora travada' in page
    assert 'Alta' in page


def test_nivel_1_nao_lista_aprovacao():
    with patch('helpdesk_api.fetch_chamados_aprovacao') as mock_fetch:
        code = helpdesk_dashboard.main(['--email', 'user@empresa.com', '--nivel', '1', 'aprovacao'])
    assert code == 2
    mock_fetch.assert_not_called()


def test_aprovar():
    with patch('helpdesk_api.fetch_chamado', return_value=FILA[0]), \
         patch('helpdesk_api.aprovar_chamado', return_value=None) as mock_aprovar:
        code = helpdesk_dashboard.main(['--email', 'gestor@empresa.com', '--nivel', '3', 'aprovar', '123'])
    assert code == 0
    mock_aprovar.assert_called_once_with('gestor@empresa.com', 123)


def test_escalar_motivo_curto_sai_com_1():
    chamado = {'id_chamado': 45, 'descricao_status_chamado': 'Com Analista'}
    with patch('helpdesk_api.fetch_chamado', return_value=chamado), \
         patch('helpdesk_api.escalar_chamado') as mock_escalar:
        code = helpdesk_dashboard.main(['--email', 'analista@empresa.com', '--nivel', '2',
                                        'escalar', '45', 'curto'])
    assert code == 1
    mock_escalar.assert_not_called()


def test_stats(capsys):
    with patch('helpdesk_api.fetch_estatisticas') as mock_stats:
        assert helpdesk_dashboard.main(['--email', 'gestor@empresa.com', '--nivel', '3', 'stats']) == 2
    mock_stats.assert_not_called()

    with patch('helpdesk_api.fetch_estatisticas', return_value={'total': 5}):
        assert helpdesk_dashboard.main(['--email', 'analista@empresa.com', '--nivel', '2', 'stats']) == 0
    assert '"total": 5' in capsys.readouterr().out


def test_sem_email_configurado(monkeypatch, capsys):
    monkeypatch.delenv('HELPDESK_USER_EMAIL', raising=False)
    assert helpdesk_dashboard.main(['chamados']) == 1
    assert 'HELPDESK_USER_EMAIL' in capsys.readouterr().err


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
