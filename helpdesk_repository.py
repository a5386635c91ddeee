"""
Sessão do usuário logado e listas de chamados/usuários carregadas do backend.

Cada visão (meus chamados, aprovação, escalados, ...) só é buscada se o perfil permitir;
sem permissão a visão levanta AccessDeniedError em vez de devolver lista vazia.
Depois de qualquer escrita bem-sucedida todas as visões já carregadas são buscadas de novo.
"""

import sys

import helpdesk_api
from helpdesk_errors import AccessDeniedError, RequestError
from helpdesk_lifecycle import (
    GERENCIAR_USUARIOS,
    RESTAURAR_USUARIO,
    VER_APROVACAO,
    VER_COM_ANALISTA,
    VER_ESCALADOS,
    VER_MEUS_CHAMADOS,
    can_perform,
    is_dono,
    nivel_acesso,
    normalize_backup,
    normalize_chamado,
    normalize_usuario,
)


class Sessao:
    """Usuário logado. Todas as permissões derivam de user['nivel_acesso']."""

    def __init__(self, user):
        self.user = normalize_usuario(user) if 'nivel_acesso' not in (user or {}) else dict(user)

    @classmethod
    def login(cls, email, password):
        """POST /api/auth/login e monta a sessão com o usuário retornado."""
        data = helpdesk_api.login(email, password) or {}
        user = data.get('user') if isinstance(data, dict) else None
        if not user:
            raise RequestError('Email ou senha incorretos', 401)
        return cls(user)

    @classmethod
    def from_email(cls, email, nivel=None):
        """
        Sessão só com o e-mail (uso no CLI). Sem nível informado, busca o próprio usuário
        em /api/users e assume nível 1 se não encontrar.
        """
        if nivel is not None:
            return cls({'email': email, 'nivel_acesso': int(nivel)})
        try:
            for raw in helpdesk_api.fetch_usuarios(email):
                u = normalize_usuario(raw)
                if u['email'].lower() == email.lower():
                    return cls(u)
        except RequestError as e:
            # /api/users exige perfil de gerente; os demais caem aqui
            print(f'Perfil não obtido ({e.message}); usando nível 1.', file=sys.stderr)
        return cls({'email': email, 'nivel_acesso': 1})

    @property
    def email(self):
        return self.user.get('email') or ''

    @property
    def nome(self):
        return self.user.get('nome') or self.email

    @property
    def nivel_acesso(self):
        return nivel_acesso(self.user)

    def pode(self, acao, alvo=None):
        return can_perform(acao, self.user, alvo)

    def to_dict(self):
        return dict(self.user)


# nome da visão -> (ação exigida, função em helpdesk_api, normalizador, mensagem de acesso negado)
VISOES = {
    'meus': (VER_MEUS_CHAMADOS, 'fetch_chamados', normalize_chamado,
             'Usuário não autenticado'),
    'aprovacao': (VER_APROVACAO, 'fetch_chamados_aprovacao', normalize_chamado,
                  'Apenas gestores e administradores podem aprovar chamados.'),
    'escalados': (VER_ESCALADOS, 'fetch_chamados_escalados', normalize_chamado,
                  'Apenas gerentes podem ver chamados escalados.'),
    'com_analista': (VER_COM_ANALISTA, 'fetch_chamados_com_analista', normalize_chamado,
                     'Apenas analistas podem ver esta lista.'),
    'usuarios': (GERENCIAR_USUARIOS, 'fetch_usuarios', normalize_usuario,
                 'Apenas gerentes e administradores podem gerenciar usuários.'),
    'deletados': (RESTAURAR_USUARIO, 'fetch_usuarios_deletados', normalize_backup,
                  'Apenas gerentes e administradores podem restaurar usuários.'),
}


class Repositorio:
    """Cópias transitórias das listas do backend, por visão."""

    def __init__(self, sessao):
        self.sessao = sessao
        self.visoes = {}
        self.erros = {}

    def verificar_acesso(self, nome):
        if nome not in VISOES:
            raise KeyError(f'Visão desconhecida: {nome}')
        acao, _fn, _norm, negado = VISOES[nome]
        if not self.sessao.pode(acao):
            raise AccessDeniedError(negado)

    def carregar(self, nome):
        """Busca a visão no backend (GET), normaliza e guarda. Levanta AccessDeniedError/RequestError."""
        self.verificar_acesso(nome)
        _acao, fn_name, normalizer, _negado = VISOES[nome]
        fetch = getattr(helpdesk_api, fn_name)
        itens = [normalizer(raw) for raw in fetch(self.sessao.email)]
        if nome == 'meus':
            itens = [c for c in itens if is_dono(self.sessao.user, c)]
        self.visoes[nome] = itens
        self.erros.pop(nome, None)
        return itens

    def get(self, nome):
        return list(self.visoes.get(nome, []))

    def recarregar(self):
        """Busca de novo todas as visões já carregadas. Retorna {visao: mensagem} das que falharam."""
        falhas = {}
        for nome in list(self.visoes):
            try:
                self.carregar(nome)
            except (RequestError, AccessDeniedError) as e:
                print(f'Erro ao recarregar {nome}: {e.message}', file=sys.stderr)
                self.erros[nome] = e.message
                falhas[nome] = e.message
        return falhas

    def chamado(self, id_chamado):
        """Chamado já carregado em alguma visão (ou None)."""
        for nome in ('meus', 'aprovacao', 'com_analista', 'escalados'):
            for c in self.visoes.get(nome, []):
                if c['id'] == id_chamado:
                    return c
        return None

    def buscar_chamado(self, id_chamado):
        """Chamado carregado ou, se não houver, GET /api/chamados/{id}."""
        c = self.chamado(id_chamado)
        if c is not None:
            return c
        return normalize_chamado(helpdesk_api.fetch_chamado(self.sessao.email, id_chamado))

    def backup(self, id_backup):
        for b in self.visoes.get('deletados', []):
            if b['id_backup'] == id_backup:
                return b
        return None

    def usuario(self, id_usuario):
        for u in self.visoes.get('usuarios', []):
            if u['id'] == id_usuario:
                return u
        return None
