#!/usr/bin/env python3
"""
Teste das rotas do dashboard web (Flask).
Verifica login, acesso negado por nível e que as rotas de ação devolvem notificações e modal.
O backend é simulado (unittest.mock.patch nas funções de helpdesk_api).
Rode: python test_routes.py
"""
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Carrega .env antes de importar o app
from dotenv import load_dotenv
load_dotenv()

import pytest

from helpdesk_errors import RequestError


@pytest.fixture
def client():
    import helpdesk_dashboard_web
    helpdesk_dashboard_web._dispatchers.clear()
    helpdesk_dashboard_web.app.config['TESTING'] = True
    return helpdesk_dashboard_web.app.test_client()


def _logar(client, nivel, email='user@empresa.com'):
    with client.session_transaction() as sess:
        sess['user'] = {'id': 10, 'email': email, 'nome': 'Teste', 'nivel_acesso': nivel}


def test_index_sem_login_mostra_formulario(client):
    r = client.get('/')
    assert r.status_code == 200
    assert b'Entrar' in r.data


def test_index_logado_mostra_menu(client):
    _logar(client, 4, 'gerente@empresa.com')
    r = client.get('/')
    assert r.status_code == 200
    assert 'Gerenciar Usuários'.encode('utf-8') in r.data
    assert 'Chamados Escalados'.encode('utf-8') in r.data


def test_login(client):
    user = {'id_usuario': 3, 'nome_usuario': 'Gil', 'email': 'gil@empresa.com',
            'perfil': {'nome': 'Gestor', 'nivel_acesso': 3}}
    with patch('helpdesk_api.login', return_value={'user': user}):
        r = client.post('/login', json={'email': 'gil@empresa.com', 'senha': 'x'})
    assert r.status_code == 200
    data = r.get_json()
    assert data['user']['nivel_acesso'] == 3
    assert ['home', 'Home'] in data['menu']


def test_login_senha_errada(client):
    with patch('helpdesk_api.login', side_effect=RequestError('Email ou senha incorretos', 401)):
        r = client.post('/login', json={'email': 'gil@empresa.com', 'senha': 'errada'})
    assert r.status_code == 401
    assert r.get_json()['error'] == 'Email ou senha incorretos'


def test_sem_login_401(client):
    r = client.get('/api/visoes/meus')
    assert r.status_code == 401


def test_nivel_1_fila_de_aprovacao_403(client):
    _logar(client, 1)
    with patch('helpdesk_api.fetch_chamados_aprovacao') as mock_fetch:
        r = client.get('/api/visoes/aprovacao')
    assert r.status_code == 403
    assert 'gestores' in r.get_json()['error']
    mock_fetch.assert_not_called()


def test_visao_com_acoes(client):
    _logar(client, 3, 'gestor@empresa.com')
    fila = [{'id_chamado': 123, 'descricao_status_chamado': 'Aberto', 'prioridade_chamado': 'alta'}]
    with patch('helpdesk_api.fetch_chamados_aprovacao', return_value=fila):
        r = client.get('/api/visoes/aprovacao')
    assert r.status_code == 200
    item = r.get_json()['itens'][0]
    assert item['id'] == 123
    assert item['prioridade'] == 'Alta'
    assert item['acoes'] == ['aprovar', 'rejeitar']


def test_aprovar_devolve_toast_e_fecha_modal(client):
    _logar(client, 3, 'gestor@empresa.com')
    fila = [{'id_chamado': 123, 'descricao_status_chamado': 'Aberto'}]
    with patch('helpdesk_api.fetch_chamados_aprovacao', side_effect=[fila, []]), \
         patch('helpdesk_api.aprovar_chamado', return_value=None):
        client.get('/api/visoes/aprovacao')
        r = client.post('/api/modal', json={'acao': 'aprovar', 'id': 123})
        assert r.get_json()['modal'] == 'confirmar_aprovacao'
        r = client.post('/api/chamados/123/aprovar')
    assert r.status_code == 200
    data = r.get_json()
    assert data['ok'] is True
    assert data['modal'] is None
    assert data['notificacoes'][0]['message'] == 'Chamado #123 aprovado com sucesso!'


def test_escalar_motivo_curto_400(client):
    _logar(client, 2, 'analista@empresa.com')
    with patch('helpdesk_api.fetch_chamado', return_value={'id_chamado': 45, 'descricao_status_chamado': 'Com Analista'}), \
         patch('helpdesk_api.escalar_chamado') as mock_escalar:
        r = client.post('/api/chamados/45/escalar', json={'motivo': 'curto'})
    assert r.status_code == 400
    data = r.get_json()
    assert data['ok'] is False
    assert data['notificacoes'][0]['kind'] == 'warning'
    mock_escalar.assert_not_called()


def test_erro_do_backend_repassa_status(client):
    _logar(client, 3, 'gestor@empresa.com')
    with patch('helpdesk_api.fetch_chamado', return_value={'id_chamado': 1, 'descricao_status_chamado': 'Aberto'}), \
         patch('helpdesk_api.aprovar_chamado', side_effect=RequestError('Erro de conexão ao aprovar chamado')):
        r = client.post('/api/chamados/1/aprovar')
    assert r.status_code == 502
    assert r.get_json()['error'] == 'Erro de conexão ao aprovar chamado'


def test_acoes_do_chamado(client):
    _logar(client, 1, 'user@empresa.com')
    raw = {'id_chamado': 9, 'descricao_status_chamado': 'Aguardando Resposta', 'email_usuario': 'user@empresa.com'}
    with patch('helpdesk_api.fetch_chamado', return_value=raw):
        r = client.get('/api/acoes/9')
    assert r.status_code == 200
    assert r.get_json()['acoes'] == ['ver_solucao_ia', 'feedback_ia']


def test_estatistica_desconhecida_404(client):
    _logar(client, 4, 'gerente@empresa.com')
    r = client.get('/api/estatisticas/nada')
    assert r.status_code == 404


def test_estatisticas_so_para_quem_ve_o_dashboard(client):
    _logar(client, 3, 'gestor@empresa.com')
    with patch('helpdesk_api.fetch_estatisticas') as mock_stats:
        r = client.get('/api/estatisticas/dashboard-stats')
    assert r.status_code == 403
    mock_stats.assert_not_called()

    import helpdesk_dashboard_web
    analista = helpdesk_dashboard_web.app.test_client()
    _logar(analista, 2, 'analista@empresa.com')
    with patch('helpdesk_api.fetch_estatisticas', return_value={'total': 5}):
        r = analista.get('/api/estatisticas/dashboard-stats')
    assert r.status_code == 200
    assert r.get_json()['data'] == {'total': 5}


def test_pagina_escapa_campos_do_backend(client):
    _logar(client, 1)
    r = client.get('/')
    assert b'function escapeHtml' in r.data
    assert b'escapeHtml(it[c])' in r.data
    assert b'escapeHtml(data.solucao.solucao)' in r.data


def test_mesmo_usuario_em_duas_sessoes_nao_divide_estado(client):
    import helpdesk_dashboard_web
    outro = helpdesk_dashboard_web.app.test_client()
    _logar(client, 3, 'gestor@empresa.com')
    _logar(outro, 3, 'gestor@empresa.com')
    with patch('helpdesk_api.fetch_chamado', return_value={'id_chamado': 123, 'descricao_status_chamado': 'Aberto'}):
        r = client.post('/api/modal', json={'acao': 'aprovar', 'id': 123})
    assert r.get_json()['modal'] == 'confirmar_aprovacao'
    r = outro.post('/api/modal/fechar')
    assert r.status_code == 200
    modais = sorted(str(d.estado.modal) for d in helpdesk_dashboard_web._dispatchers.values())
    assert modais == ['None', 'confirmar_aprovacao']
    outro.post('/logout')
    assert len(helpdesk_dashboard_web._dispatchers) == 1


def test_export_aprovacao(client):
    _logar(client, 3, 'gestor@empresa.com')
    fila = [{'id_chamado': 123, 'titulo_chamado': 'Impressora travada', 'descricao_status_chamado': 'Aberto'}]
    with patch('helpdesk_api.fetch_chamados_aprovacao', return_value=fila):
        r = client.get('/export/aprovacao')
    assert r.status_code == 200
    assert r.headers['Content-Disposition'] == 'attachment; filename=aprovacao.html'
    assert 'Impressora travada'.encode('utf-8') in r.data
    assert 'Chamados para Aprovação'.encode('utf-8') in r.data


def test_logout(client):
    _logar(client, 1)
    r = client.post('/logout')
    assert r.status_code == 200
    assert client.get('/api/visoes/meus').status_code == 401


if __name__ == '__main__':
    print('Testando rotas do Helpdesk Dashboard...\n')
    sys.exit(pytest.main([__file__, '-v']))
