"""
Ações do dashboard: estado dos modais e execução de cada ação que altera dados.

Fluxo de toda ação: permissão (can_perform) -> validação local -> uma chamada HTTP ->
fecha o modal -> toast -> recarrega as visões. Falha de validação mostra aviso e não chama
o backend; falha do backend mostra a mensagem do servidor e deixa as listas como estavam.
"""

import sys

import helpdesk_api
from helpdesk_errors import AccessDeniedError, RequestError, ValidationError
from helpdesk_lifecycle import (
    APROVAR,
    CRIAR_CHAMADO,
    DEU_CERTO,
    DESATIVAR_USUARIO,
    DEU_ERRADO,
    EDITAR_USUARIO,
    ESCALAR,
    FEEDBACK_DESTINO,
    FEEDBACK_IA,
    GERENCIAR_USUARIOS,
    MIN_MOTIVO,
    REJEITAR,
    RESOLVER,
    RESOLVER_ESCALADO,
    RESTAURAR_USUARIO,
    VER_SOLUCAO_IA,
    can_create_profile,
    can_edit_user,
    can_perform,
    montar_payload_chamado,
    montar_payload_usuario,
    normalize_solucao_ia,
    pode_enviar,
    proximo_modal,
    validar_motivo,
    validar_novo_chamado,
    validar_relatorio,
)
from helpdesk_notify import ERROR, SUCCESS, WARNING, Notifier
from helpdesk_repository import Repositorio

NEGADO = {
    APROVAR: 'Apenas gestores e administradores podem aprovar chamados.',
    REJEITAR: 'Apenas gestores e administradores podem rejeitar chamados.',
    RESOLVER: 'Apenas analistas podem resolver chamados.',
    ESCALAR: 'Apenas analistas podem escalar chamados.',
    RESOLVER_ESCALADO: 'Apenas gerentes podem resolver chamados escalados.',
    VER_SOLUCAO_IA: 'Usuário não autenticado',
    FEEDBACK_IA: 'Usuário não autenticado',
    CRIAR_CHAMADO: 'Usuário não autenticado',
    GERENCIAR_USUARIOS: 'Apenas gerentes e administradores podem gerenciar usuários.',
    EDITAR_USUARIO: 'Você não tem permissão para editar este usuário.',
    RESTAURAR_USUARIO: 'Apenas gerentes e administradores podem restaurar usuários.',
    DESATIVAR_USUARIO: 'Você não tem permissão para desativar este usuário.',
}

MENSAGEM_FEEDBACK = {
    DEU_CERTO: 'Ótimo! Seu chamado foi marcado como resolvido.',
    DEU_ERRADO: 'Seu chamado foi encaminhado para um analista humano que entrará em contato.',
}


class EstadoWorkflow:
    """Modal aberto, item selecionado e a trava de envio (botão desabilitado)."""

    def __init__(self):
        self.modal = None
        self.acao = None
        self.selecionado = None
        self.processando = False
        self.solucao_ia = None
        self.erro = None
        self.erro_tipo = None
        self.status_code = None

    def abrir(self, acao, user, alvo=None):
        """Abre o modal da ação se o usuário puder executá-la; retorna o nome do modal."""
        if not can_perform(acao, user, alvo):
            raise AccessDeniedError(NEGADO.get(acao, 'Acesso negado.'))
        self.modal = proximo_modal(acao)
        self.acao = acao
        self.selecionado = alvo
        self.erro = None
        return self.modal

    def fechar(self):
        self.modal = None
        self.acao = None
        self.selecionado = None
        self.solucao_ia = None

    def to_dict(self):
        return {
            'modal': self.modal,
            'acao': self.acao,
            'processando': self.processando,
            'erro': self.erro,
        }


class Dispatcher:
    """Executa as ações do usuário logado sobre o repositório de visões."""

    def __init__(self, sessao, repositorio=None, notifier=None):
        self.sessao = sessao
        self.repositorio = repositorio or Repositorio(sessao)
        self.notifier = notifier or Notifier()
        self.estado = EstadoWorkflow()
        # chamados cuja resposta da IA já recebeu feedback nesta sessão
        self._feedback_enviado = set()

    # ---- modais ----

    def abrir(self, acao, alvo=None):
        return self.estado.abrir(acao, self.sessao.user, alvo)

    def fechar(self):
        self.estado.fechar()

    def pode_enviar(self, acao, id_alvo, texto=None):
        """Botão de envio habilitado? (permissão + estado do alvo + motivo mínimo quando a ação exige)."""
        try:
            if acao == DESATIVAR_USUARIO:
                alvo = self.repositorio.usuario(id_alvo) or {'id': id_alvo}
            else:
                alvo = self.repositorio.buscar_chamado(id_alvo)
        except RequestError as e:
            print(f'Erro ao verificar envio: {e.message}', file=sys.stderr)
            return False
        return pode_enviar(acao, self.sessao.user, alvo, texto)

    # ---- suporte ----

    def _aviso(self, mensagem, tipo='validacao', status_code=400):
        self.estado.erro = mensagem
        self.estado.erro_tipo = tipo
        self.estado.status_code = status_code
        self.notifier.notify(WARNING, mensagem)
        return False

    def _checar(self, acao, alvo=None):
        """AccessDeniedError se o nível não permite; aviso (False) se o alvo não está no estado certo."""
        if not can_perform(acao, self.sessao.user):
            raise AccessDeniedError(NEGADO.get(acao, 'Acesso negado.'))
        if alvo is not None and not can_perform(acao, self.sessao.user, alvo):
            status = alvo.get('status') or '?'
            return self._aviso(f'Ação não disponível para chamado com status "{status}".', 'estado', 409)
        return True

    def _chamado(self, acao, id_chamado):
        """Chamado alvo da ação (carregado ou buscado), já checado; None se a ação não pode seguir."""
        self._checar(acao)
        try:
            chamado = self.repositorio.buscar_chamado(id_chamado)
        except RequestError as e:
            self._falha('buscar chamado', e)
            return None
        return chamado if self._checar(acao, chamado) else None

    def _falha(self, nome, e):
        print(f'Erro ao {nome}: {e.message}', file=sys.stderr)
        self.estado.erro = e.message
        self.estado.erro_tipo = 'requisicao'
        self.estado.status_code = e.status_code or 502
        self.notifier.notify(ERROR, e.message)
        return False

    def _executar(self, nome, chamada, mensagem, garantir=()):
        """Uma chamada ao backend com trava de envio. mensagem: str ou função(resultado) -> str."""
        if self.estado.processando:
            self.estado.erro = 'Ação já em andamento.'
            self.estado.erro_tipo = 'estado'
            self.estado.status_code = 409
            return False
        self.estado.processando = True
        self.estado.erro = None
        self.estado.erro_tipo = None
        self.estado.status_code = None
        try:
            resultado = chamada()
        except RequestError as e:
            self.estado.fechar()
            return self._falha(nome, e)
        finally:
            self.estado.processando = False
        self.estado.fechar()
        self.notifier.notify(SUCCESS, mensagem(resultado) if callable(mensagem) else mensagem)
        self._recarregar(garantir)
        return True

    def _recarregar(self, garantir=()):
        for nome in garantir:
            self.repositorio.visoes.setdefault(nome, [])
        for msg in self.repositorio.recarregar().values():
            self.notifier.notify(ERROR, msg)

    # ---- chamados ----

    def aprovar(self, id_chamado):
        chamado = self._chamado(APROVAR, id_chamado)
        if chamado is None:
            return False
        email = self.sessao.email
        return self._executar(
            'aprovar chamado',
            lambda: helpdesk_api.aprovar_chamado(email, id_chamado),
            f'Chamado #{id_chamado} aprovado com sucesso!',
        )

    def rejeitar(self, id_chamado, motivo):
        chamado = self._chamado(REJEITAR, id_chamado)
        if chamado is None:
            return False
        try:
            motivo = validar_motivo(
                motivo, mensagem=f'Motivo da rejeição deve ter pelo menos {MIN_MOTIVO} caracteres')
        except ValidationError as e:
            return self._aviso(e.message)
        email = self.sessao.email
        return self._executar(
            'rejeitar chamado',
            lambda: helpdesk_api.rejeitar_chamado(email, id_chamado, motivo),
            f'Chamado #{id_chamado} rejeitado com sucesso!',
        )

    def escalar(self, id_chamado, motivo):
        chamado = self._chamado(ESCALAR, id_chamado)
        if chamado is None:
            return False
        try:
            motivo = validar_motivo(
                motivo, mensagem=f'Motivo do escalonamento deve ter pelo menos {MIN_MOTIVO} caracteres')
        except ValidationError as e:
            return self._aviso(e.message)
        email = self.sessao.email
        return self._executar(
            'escalar chamado',
            lambda: helpdesk_api.escalar_chamado(email, id_chamado, motivo),
            'Chamado escalado para gerente com sucesso!',
        )

    def resolver(self, id_chamado, relatorio=None):
        """Resolve chamado 'Com Analista'. Com relatório, grava o relatório antes de resolver."""
        return self._resolver(RESOLVER, id_chamado, relatorio)

    def resolver_escalado(self, id_chamado, relatorio=None):
        return self._resolver(RESOLVER_ESCALADO, id_chamado, relatorio)

    def _resolver(self, acao, id_chamado, relatorio):
        chamado = self._chamado(acao, id_chamado)
        if chamado is None:
            return False
        if relatorio is not None:
            try:
                relatorio = validar_relatorio(relatorio)
            except ValidationError as e:
                return self._aviso(e.message)
        email = self.sessao.email
        escalado = acao == RESOLVER_ESCALADO
        resolver_fn = helpdesk_api.resolver_chamado_escalado if escalado else helpdesk_api.resolver_chamado

        def chamada():
            if relatorio:
                helpdesk_api.salvar_relatorio_resolucao(email, {
                    'id_chamado': id_chamado,
                    'relatorio_resposta': relatorio,
                    'id_usuario_abertura': chamado.get('id_usuario_abertura'),
                    'id_categoria_chamado': chamado.get('id_categoria'),
                    'id_problema_chamado': chamado.get('id_problema'),
                })
            return resolver_fn(email, id_chamado, relatorio)

        if escalado:
            return self._executar('resolver chamado escalado', chamada,
                                  'Chamado escalado resolvido com sucesso!')
        return self._executar('resolver chamado', chamada,
                              'Chamado marcado como resolvido com sucesso!')

    def ver_solucao_ia(self, id_chamado):
        """Busca a solução proposta pela IA e abre o modal; retorna a solução normalizada ou None."""
        chamado = self._chamado(VER_SOLUCAO_IA, id_chamado)
        if chamado is None:
            return None
        try:
            solucao = normalize_solucao_ia(helpdesk_api.fetch_solucao_ia(self.sessao.email, id_chamado))
        except RequestError as e:
            self._falha('buscar solução da IA', e)
            return None
        self.estado.abrir(VER_SOLUCAO_IA, self.sessao.user, chamado)
        self.estado.solucao_ia = solucao
        if solucao['feedback']:
            self._feedback_enviado.add(id_chamado)
        return solucao

    def feedback_ia(self, id_chamado, feedback):
        """DEU_CERTO -> Resolvido; DEU_ERRADO -> Com Analista. Um feedback por resposta da IA."""
        chamado = self._chamado(FEEDBACK_IA, id_chamado)
        if chamado is None:
            return False
        if feedback not in FEEDBACK_DESTINO:
            return self._aviso(f'Feedback inválido: {feedback}')
        # o modal fecha a cada envio; a chave é o chamado, não a solução aberta
        if id_chamado in self._feedback_enviado:
            return self._aviso('Feedback já enviado para esta solução.', 'estado', 409)
        email = self.sessao.email

        def chamada():
            resultado = helpdesk_api.enviar_feedback_ia(email, id_chamado, feedback)
            self._feedback_enviado.add(id_chamado)
            return resultado

        return self._executar('enviar feedback', chamada, MENSAGEM_FEEDBACK[feedback])

    def criar_chamado(self, form):
        """Novo chamado (status inicial Aberto, aguardando o gestor)."""
        self._checar(CRIAR_CHAMADO)
        try:
            form = validar_novo_chamado(form)
        except ValidationError as e:
            return self._aviso(e.message)
        payload = montar_payload_chamado(form)
        email = self.sessao.email

        def mensagem(resultado):
            novo_id = (resultado or {}).get('id_chamado') if isinstance(resultado, dict) else None
            return f'Chamado #{novo_id or "?"} criado com sucesso!\n\nStatus: Aguardando aprovação do gestor.'

        return self._executar(
            'criar chamado',
            lambda: helpdesk_api.criar_chamado(email, payload),
            mensagem,
            garantir=('meus',),
        )

    # ---- usuários ----

    def criar_usuario(self, form):
        self._checar(GERENCIAR_USUARIOS)
        nivel_perfil = form.get('nivel_perfil')
        if nivel_perfil is not None and not can_create_profile(self.sessao.user, nivel_perfil):
            return self._aviso('Você não pode criar usuários com este perfil.', 'permissao', 403)
        try:
            payload = montar_payload_usuario(form, criar=True)
        except ValidationError as e:
            return self._aviso(e.message)
        email = self.sessao.email
        return self._executar(
            'cadastrar usuário',
            lambda: helpdesk_api.criar_usuario(email, payload),
            'Usuário cadastrado com sucesso!',
            garantir=('usuarios',),
        )

    def editar_usuario(self, id_usuario, form):
        alvo = self.repositorio.usuario(id_usuario) or {'id': id_usuario}
        if not can_edit_user(self.sessao.user, alvo):
            raise AccessDeniedError(NEGADO[EDITAR_USUARIO])
        try:
            payload = montar_payload_usuario(form, criar=False)
        except ValidationError as e:
            return self._aviso(e.message)
        email = self.sessao.email
        return self._executar(
            'editar usuário',
            lambda: helpdesk_api.editar_usuario(email, id_usuario, payload),
            'Usuário atualizado com sucesso!',
        )

    def desativar_usuario(self, id_usuario, motivo):
        self._checar(DESATIVAR_USUARIO)
        alvo = self.repositorio.usuario(id_usuario)
        if alvo is not None and not can_perform(DESATIVAR_USUARIO, self.sessao.user, alvo):
            raise AccessDeniedError(NEGADO[DESATIVAR_USUARIO])
        try:
            motivo = validar_motivo(
                motivo, mensagem=f'Motivo da desativação deve ter pelo menos {MIN_MOTIVO} caracteres')
        except ValidationError as e:
            return self._aviso(e.message)
        email = self.sessao.email
        return self._executar(
            'desativar usuário',
            lambda: helpdesk_api.desativar_usuario(email, id_usuario, motivo),
            'Usuário desativado com sucesso!',
            garantir=('usuarios', 'deletados'),
        )

    def restaurar_usuario(self, id_backup):
        self._checar(RESTAURAR_USUARIO)
        backup = self.repositorio.backup(id_backup)
        if backup is None:
            try:
                self.repositorio.carregar('deletados')
            except RequestError as e:
                return self._falha('carregar usuários deletados', e)
            backup = self.repositorio.backup(id_backup)
        if backup is None:
            return self._aviso('Backup de usuário não encontrado.', 'estado', 404)
        if not can_perform(RESTAURAR_USUARIO, self.sessao.user, backup):
            return self._aviso('Este usuário já foi restaurado.', 'estado', 409)
        email = self.sessao.email
        return self._executar(
            'restaurar usuário',
            lambda: helpdesk_api.restaurar_usuario(email, id_backup),
            f'Usuário "{backup["nome"]}" restaurado com sucesso!',
        )
