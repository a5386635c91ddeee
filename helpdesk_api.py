#!/usr/bin/env python3
"""
Cliente HTTP do backend de chamados (API REST em HELPDESK_API_URL).

Toda chamada envia o header x-user-email com o e-mail do usuário logado (não há token).
Respostas do backend: {"status", "message", "data"}; em erro só "message" importa.
Qualquer resposta não-2xx vira RequestError com a mensagem do servidor (ou um texto padrão);
falha de rede/timeout vira RequestError sem status_code. Nada é repetido automaticamente.
"""

import os

import requests
from dotenv import load_dotenv

from helpdesk_errors import RequestError

load_dotenv()

API_URL = os.environ.get('HELPDESK_API_URL', 'http://localhost:3001')
REQUEST_TIMEOUT = float(os.environ.get('HELPDESK_TIMEOUT', '30'))

CONNECTION_ERROR_MESSAGE = 'Erro de conexão com o servidor'

# GET /api/estatisticas/<nome>
ESTATISTICAS = (
    'chamados-mensais',
    'chamados-anuais',
    'chamados-categoria',
    'chamados-analistas',
    'dashboard-stats',
    'dashboard-stats-detalhadas',
    'relatorio-completo',
)

FEEDBACK_VALUES = ('DEU_CERTO', 'DEU_ERRADO')


def get_user_email():
    """E-mail do usuário para o header x-user-email (HELPDESK_USER_EMAIL no .env)."""
    email = (os.environ.get('HELPDESK_USER_EMAIL') or '').strip()
    if not email:
        raise RuntimeError('HELPDESK_USER_EMAIL environment variable not set')
    return email


def _headers(email):
    return {
        'Content-Type': 'application/json',
        'Accept': 'application/json',
        'x-user-email': email or '',
    }


def _error_message(response, fallback):
    """Extrai 'message' do corpo de erro; se não for JSON, usa o fallback."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get('message') or body.get('error') or fallback
    return fallback


def api_request(method, path, email=None, payload=None, params=None,
                fallback='Erro na requisição', connection_message=CONNECTION_ERROR_MESSAGE):
    """
    Faz a requisição e devolve o campo 'data' da resposta (ou o corpo inteiro se não houver 'data').
    fallback: mensagem usada quando o backend não manda 'message'.
    connection_message: mensagem para falha de rede (servidor fora do ar, timeout).
    """
    url = f'{API_URL.rstrip("/")}{path}'
    try:
        r = requests.request(
            method,
            url,
            headers=_headers(email),
            json=payload,
            params=params,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise RequestError(connection_message) from e
    if not r.ok:
        raise RequestError(_error_message(r, fallback), r.status_code)
    try:
        body = r.json()
    except ValueError:
        return None
    if isinstance(body, dict) and 'data' in body:
        return body['data']
    return body


def _as_list(data):
    """Listagens: o backend devolve lista em 'data'; qualquer outra coisa vira []."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        lst = data.get('items') or data.get('results') or []
        if isinstance(lst, list):
            return lst
    return []


# ---- Autenticação ----

def login(email, password):
    """POST /api/auth/login - retorna {'user': {..., 'perfil': {'nivel_acesso': N}}}."""
    return api_request(
        'POST', '/api/auth/login',
        payload={'email': email, 'password': password},
        fallback='Email ou senha incorretos',
        connection_message='Erro de conexão ao fazer login',
    )


# ---- Chamados ----

def fetch_chamados(email):
    """GET /api/chamados - nível 1 recebe só os próprios; demais níveis recebem todos."""
    data = api_request(
        'GET', '/api/chamados', email,
        fallback='Erro ao carregar chamados',
        connection_message='Erro de conexão ao carregar chamados',
    )
    return _as_list(data)


def fetch_chamado(email, id_chamado):
    """GET /api/chamados/{id} - detalhe do chamado."""
    return api_request(
        'GET', f'/api/chamados/{id_chamado}', email,
        fallback='Chamado não encontrado.',
        connection_message='Erro de conexão ao buscar chamado',
    )


def fetch_chamados_aprovacao(email):
    """GET /api/chamados/aprovacao - chamados 'Aberto' aguardando o gestor."""
    data = api_request(
        'GET', '/api/chamados/aprovacao', email,
        fallback='Erro ao carregar chamados para aprovação',
        connection_message='Erro de conexão ao carregar chamados',
    )
    return _as_list(data)


def fetch_chamados_escalados(email):
    """GET /api/chamados/escalados - chamados com status 'Escalado'."""
    data = api_request(
        'GET', '/api/chamados/escalados', email,
        fallback='Erro ao carregar chamados escalados',
        connection_message='Erro de conexão ao carregar chamados escalados',
    )
    return _as_list(data)


def fetch_chamados_com_analista(email):
    """GET /api/chamados/com-analista - fila dos analistas."""
    data = api_request(
        'GET', '/api/chamados/com-analista', email,
        fallback='Erro ao carregar chamados com analista',
        connection_message='Erro de conexão ao carregar chamados',
    )
    return _as_list(data)


def criar_chamado(email, payload):
    """POST /api/chamados - payload já no formato do backend (ver montar_payload_chamado)."""
    return api_request(
        'POST', '/api/chamados', email, payload=payload,
        fallback='Erro ao criar chamado',
        connection_message='Erro de conexão ao criar chamado',
    )


def aprovar_chamado(email, id_chamado):
    """POST /api/chamados/{id}/aprovar - encaminha para Triagem IA."""
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/aprovar', email,
        fallback='Erro ao aprovar chamado',
        connection_message='Erro de conexão ao aprovar chamado',
    )


def rejeitar_chamado(email, id_chamado, motivo):
    """POST /api/chamados/{id}/rejeitar  body: {motivo}."""
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/rejeitar', email,
        payload={'motivo': motivo},
        fallback='Erro ao rejeitar chamado',
        connection_message='Erro de conexão ao rejeitar chamado',
    )


def resolver_chamado(email, id_chamado, solucao=None):
    """POST /api/chamados/{id}/resolver - chamado 'Com Analista'."""
    payload = {'solucao': solucao} if solucao else None
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/resolver', email, payload=payload,
        fallback='Erro ao resolver chamado',
        connection_message='Erro de conexão ao resolver chamado',
    )


def resolver_chamado_escalado(email, id_chamado, solucao=None):
    """POST /api/chamados/{id}/resolver-escalado - chamado 'Escalado' (gerente)."""
    payload = {'solucao': solucao} if solucao else None
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/resolver-escalado', email, payload=payload,
        fallback='Erro ao resolver chamado escalado',
        connection_message='Erro de conexão ao resolver chamado escalado',
    )


def salvar_relatorio_resolucao(email, payload):
    """POST /api/chamados/resolver-com-relatorio - grava o relatório antes de marcar como resolvido."""
    return api_request(
        'POST', '/api/chamados/resolver-com-relatorio', email, payload=payload,
        fallback='Erro ao salvar resolução. Tente novamente.',
        connection_message='Erro de conexão ao salvar resolução',
    )


def escalar_chamado(email, id_chamado, motivo):
    """POST /api/chamados/{id}/escalar  body: {motivo}."""
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/escalar', email,
        payload={'motivo': motivo},
        fallback='Erro ao escalar chamado',
        connection_message='Erro de conexão ao escalar chamado',
    )


def fetch_solucao_ia(email, id_chamado):
    """GET /api/chamados/{id}/solucao-ia - última resposta da IA (tipo SOLUCAO)."""
    return api_request(
        'GET', f'/api/chamados/{id_chamado}/solucao-ia', email,
        fallback='Solução da IA não encontrada para este chamado.',
        connection_message='Erro de conexão ao buscar solução da IA',
    )


def enviar_feedback_ia(email, id_chamado, feedback):
    """POST /api/chamados/{id}/feedback-ia  body: {feedback: DEU_CERTO|DEU_ERRADO}."""
    return api_request(
        'POST', f'/api/chamados/{id_chamado}/feedback-ia', email,
        payload={'feedback': feedback},
        fallback='Erro ao enviar feedback',
        connection_message='Erro de conexão ao enviar feedback',
    )


# ---- Usuários ----

def fetch_perfis():
    """GET /api/users/perfis - rota pública com os perfis (id, nome, nivel_acesso)."""
    data = api_request(
        'GET', '/api/users/perfis',
        fallback='Erro ao carregar perfis',
        connection_message='Erro de conexão ao carregar perfis',
    )
    return _as_list(data)


def fetch_usuarios(email):
    """GET /api/users."""
    data = api_request(
        'GET', '/api/users', email,
        fallback='Erro ao carregar usuários',
        connection_message='Erro de conexão ao carregar usuários',
    )
    return _as_list(data)


def fetch_usuario(email, id_usuario):
    """GET /api/users/{id}."""
    return api_request(
        'GET', f'/api/users/{id_usuario}', email,
        fallback='Usuário não encontrado',
        connection_message='Erro de conexão ao buscar usuário',
    )


def criar_usuario(email, payload):
    """POST /api/users."""
    return api_request(
        'POST', '/api/users', email, payload=payload,
        fallback='Erro ao cadastrar usuário',
        connection_message='Erro de conexão ao cadastrar usuário',
    )


def editar_usuario(email, id_usuario, payload):
    """PUT /api/users/{id}."""
    return api_request(
        'PUT', f'/api/users/{id_usuario}', email, payload=payload,
        fallback='Erro ao editar usuário',
        connection_message='Erro de conexão ao editar usuário',
    )


def desativar_usuario(email, id_usuario, motivo):
    """DELETE /api/users/{id}  body: {motivo}. O backend guarda um backup restaurável."""
    return api_request(
        'DELETE', f'/api/users/{id_usuario}', email,
        payload={'motivo': motivo},
        fallback='Erro ao desativar usuário',
        connection_message='Erro de conexão ao desativar usuário',
    )


def fetch_usuarios_deletados(email):
    """GET /api/users/deleted - backups (status ATIVO ou RESTAURADO)."""
    data = api_request(
        'GET', '/api/users/deleted', email,
        fallback='Erro ao carregar usuários deletados',
        connection_message='Erro de conexão ao carregar usuários deletados',
    )
    return _as_list(data)


def restaurar_usuario(email, id_backup):
    """POST /api/users/restore/{id_backup}."""
    return api_request(
        'POST', f'/api/users/restore/{id_backup}', email,
        fallback='Erro ao restaurar usuário',
        connection_message='Erro de conexão ao restaurar usuário',
    )


# ---- Estatísticas ----

def fetch_estatisticas(email, nome='dashboard-stats'):
    """GET /api/estatisticas/{nome} - agregados somente leitura para o dashboard."""
    if nome not in ESTATISTICAS:
        raise ValueError(f'Estatística desconhecida: {nome}. Opções: {", ".join(ESTATISTICAS)}')
    return api_request(
        'GET', f'/api/estatisticas/{nome}', email,
        fallback='Erro ao carregar estatísticas',
        connection_message='Erro de conexão ao carregar estatísticas',
    )
