#!/usr/bin/env python3
"""
Testes do repositório de visões: acesso negado por nível, filtro de 'meus chamados'
e recarga depois de escrita.
Rode: python test_repository.py
"""
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from helpdesk_errors import AccessDeniedError, RequestError
from helpdesk_repository import Repositorio, Sessao

CHAMADOS = [
    {'id_chamado': 1, 'descricao_status_chamado': 'Aberto', 'email_usuario': 'user@empresa.com'},
    {'id_chamado': 2, 'descricao_status_chamado': 'Com Analista', 'email_usuario': 'outro@empresa.com'},
]


def test_usuario_nivel_1_ve_so_os_proprios():
    repo = Repositorio(Sessao({'email': 'user@empresa.com', 'nivel_acesso': 1}))
    with patch('helpdesk_api.fetch_chamados', return_value=CHAMADOS):
        itens = repo.carregar('meus')
    assert [c['id'] for c in itens] == [1]


def test_fila_de_aprovacao_negada_para_nivel_1():
    repo = Repositorio(Sessao({'email': 'user@empresa.com', 'nivel_acesso': 1}))
    with patch('helpdesk_api.fetch_chamados_aprovacao') as mock_fetch:
        with pytest.raises(AccessDeniedError):
            repo.carregar('aprovacao')
    mock_fetch.assert_not_called()
    assert repo.get('aprovacao') == []


def test_visao_desconhecida():
    repo = Repositorio(Sessao({'email': 'a@empresa.com', 'nivel_acesso': 5}))
    with pytest.raises(KeyError):
        repo.carregar('lixeira')


def test_recarregar_refaz_visoes_carregadas_e_reporta_falhas():
    repo = Repositorio(Sessao({'email': 'gestor@empresa.com', 'nivel_acesso': 3}))
    with patch('helpdesk_api.fetch_chamados_aprovacao', return_value=CHAMADOS[:1]):
        repo.carregar('aprovacao')
    with patch('helpdesk_api.fetch_chamados_aprovacao',
               side_effect=RequestError('Erro de conexão ao carregar chamados')):
        falhas = repo.recarregar()
    assert falhas == {'aprovacao': 'Erro de conexão ao carregar chamados'}
    # a lista anterior continua disponível
    assert [c['id'] for c in repo.get('aprovacao')] == [1]


def test_buscar_chamado_fora_das_visoes():
    repo = Repositorio(Sessao({'email': 'gestor@empresa.com', 'nivel_acesso': 3}))
    with patch('helpdesk_api.fetch_chamado', return_value=CHAMADOS[1]) as mock_fetch:
        c = repo.buscar_chamado(2)
    mock_fetch.assert_called_once_with('gestor@empresa.com', 2)
    assert c['status'] == 'Com Analista'


def test_sessao_login():
    user = {'id_usuario': 3, 'nome_usuario': 'Gil', 'email': 'gil@empresa.com',
            'perfil': {'nome': 'Gestor', 'nivel_acesso': 3}}
    with patch('helpdesk_api.login', return_value={'user': user}):
        sessao = Sessao.login('gil@empresa.com', 'senha')
    assert sessao.nivel_acesso == 3
    assert sessao.nome == 'Gil'
    with patch('helpdesk_api.login', return_value={}):
        with pytest.raises(RequestError):
            Sessao.login('gil@empresa.com', 'errada')


def test_sessao_from_email_sem_permissao_cai_para_nivel_1():
    with patch('helpdesk_api.fetch_usuarios', side_effect=RequestError('Acesso negado', 403)):
        sessao = Sessao.from_email('user@empresa.com')
    assert sessao.nivel_acesso == 1
    assert Sessao.from_email('x@empresa.com', nivel=4).nivel_acesso == 4


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
