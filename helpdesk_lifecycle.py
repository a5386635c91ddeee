#!/usr/bin/env python3
"""
Ciclo de vida do chamado visto pelo cliente.

Aberto -> Aprovado/Rejeitado -> Triagem IA -> Aguardando Resposta/Com Analista
-> Escalado -> Resolvido -> Fechado.

As transições são feitas pelo backend; aqui ficam só as regras que o dashboard precisa
para decidir o que mostrar: quais ações o usuário pode executar (can_perform), qual modal
abre em seguida, validação local de motivo/relatório/formulário e a normalização dos
registros devolvidos pela API.
"""

import re
from datetime import datetime

from helpdesk_errors import ValidationError

# ---- Status ----

ABERTO = 'Aberto'
APROVADO = 'Aprovado'
REJEITADO = 'Rejeitado'
TRIAGEM_IA = 'Triagem IA'
AGUARDANDO_RESPOSTA = 'Aguardando Resposta'
COM_ANALISTA = 'Com Analista'
ESCALADO = 'Escalado'
RESOLVIDO = 'Resolvido'
FECHADO = 'Fechado'

STATUS = (
    ABERTO, APROVADO, REJEITADO, TRIAGEM_IA, AGUARDANDO_RESPOSTA,
    COM_ANALISTA, ESCALADO, RESOLVIDO, FECHADO,
)

TRANSICOES = {
    ABERTO: (APROVADO, REJEITADO),
    APROVADO: (TRIAGEM_IA,),
    TRIAGEM_IA: (AGUARDANDO_RESPOSTA, COM_ANALISTA),
    AGUARDANDO_RESPOSTA: (RESOLVIDO, COM_ANALISTA),
    COM_ANALISTA: (RESOLVIDO, ESCALADO),
    ESCALADO: (RESOLVIDO,),
    RESOLVIDO: (FECHADO,),
    REJEITADO: (),
    FECHADO: (),
}

STATUS_TERMINAIS = tuple(s for s, nxt in TRANSICOES.items() if not nxt)

# Feedback da solução IA -> status para onde o backend leva o chamado
DEU_CERTO = 'DEU_CERTO'
DEU_ERRADO = 'DEU_ERRADO'
FEEDBACK_DESTINO = {
    DEU_CERTO: RESOLVIDO,
    DEU_ERRADO: COM_ANALISTA,
}

BACKUP_ATIVO = 'ATIVO'
BACKUP_RESTAURADO = 'RESTAURADO'

# ---- Níveis de acesso (perfil.nivel_acesso) ----

NIVEL_USUARIO = 1
NIVEL_ANALISTA = 2
NIVEL_GESTOR = 3
NIVEL_GERENTE = 4
NIVEL_ADMIN = 5

MIN_MOTIVO = 10
MIN_RELATORIO = 20
MIN_DESCRICAO = 10

# ---- Prioridade (1-4) ----

PRIORIDADE_MAP = {
    'baixa': 1,
    'media': 2,
    'média': 2,
    'alta': 3,
    'urgente': 4,
}
PRIORIDADE_TEXTOS = {
    1: 'Baixa',
    2: 'Média',
    3: 'Alta',
    4: 'Urgente',
}
PRIORIDADE_PADRAO = 2
TEXTO_PRIORIDADE_INDEFINIDA = 'Não definida'


def convert_prioridade_to_number(prioridade):
    """'baixa' -> 1 ... 'urgente' -> 4 (case-insensitive). Inválido ou vazio -> 2 (média)."""
    if isinstance(prioridade, bool):
        return PRIORIDADE_PADRAO
    if isinstance(prioridade, int):
        return prioridade if prioridade in PRIORIDADE_TEXTOS else PRIORIDADE_PADRAO
    if not isinstance(prioridade, str) or not prioridade.strip():
        return PRIORIDADE_PADRAO
    p = prioridade.strip().lower()
    if p.isdigit():
        return convert_prioridade_to_number(int(p))
    return PRIORIDADE_MAP.get(p, PRIORIDADE_PADRAO)


def get_prioridade_texto(prioridade):
    """1 -> 'Baixa' ... 4 -> 'Urgente'; qualquer outro valor -> 'Não definida'."""
    if isinstance(prioridade, bool) or not isinstance(prioridade, int):
        return TEXTO_PRIORIDADE_INDEFINIDA
    return PRIORIDADE_TEXTOS.get(prioridade, TEXTO_PRIORIDADE_INDEFINIDA)


def is_prioridade_valida(prioridade):
    if isinstance(prioridade, str):
        return prioridade.strip().lower() in PRIORIDADE_MAP
    if isinstance(prioridade, int) and not isinstance(prioridade, bool):
        return prioridade in PRIORIDADE_TEXTOS
    return False


def get_prioridades_disponiveis():
    """Lista [{'valor': 1, 'texto': 'Baixa', 'slug': 'baixa'}, ...] para selects."""
    slugs = {1: 'baixa', 2: 'media', 3: 'alta', 4: 'urgente'}
    return [{'valor': v, 'texto': PRIORIDADE_TEXTOS[v], 'slug': slugs[v]} for v in sorted(PRIORIDADE_TEXTOS)]


# ---- Datas ----

def _parse_iso_date(s):
    """Parse ISO date string (ou datetime) to datetime; return None on failure."""
    if not s:
        return None
    if isinstance(s, datetime):
        return s
    try:
        t = str(s).strip().replace('Z', '+00:00')
        # Postgres/Node podem mandar -0300 (sem dois pontos); fromisoformat espera -03:00
        t = re.sub(r'([+-])(\d{2})(\d{2})$', r'\1\2:\3', t)
        return datetime.fromisoformat(t)
    except ValueError:
        try:
            return datetime.fromisoformat(str(s)[:19])
        except ValueError:
            return None


def format_data(dt):
    """datetime -> '31/01/2025 14:05' (pt-BR); None -> ''."""
    if not dt:
        return ''
    return dt.strftime('%d/%m/%Y %H:%M')


def _naive(dt):
    # Comparação entre datas com e sem fuso: compara o horário de parede
    return dt.replace(tzinfo=None) if dt and dt.tzinfo else dt


# ---- Normalização dos registros da API ----

def _first(raw, *keys):
    for k in keys:
        v = raw.get(k)
        if v is not None and v != '':
            return v
    return None


def _to_int(v):
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def normalize_chamado(raw):
    """Registro de chamado da API -> dict com chaves estáveis (id, status, prioridade 1-4, datas em datetime)."""
    raw = raw or {}
    motivo = _first(raw, 'motivo_reprovacao', 'motivo_recusa', 'motivo_rejeicao')
    return {
        'id': _to_int(_first(raw, 'id_chamado', 'id')),
        'titulo': _first(raw, 'titulo_chamado', 'titulo') or '',
        'categoria': _first(raw, 'descricao_categoria_chamado', 'descricao_categoria', 'categoria') or '',
        'problema': _first(raw, 'descricao_problema_chamado', 'descricao_problema', 'problema') or '',
        'status': _first(raw, 'descricao_status_chamado', 'status') or '',
        'prioridade': convert_prioridade_to_number(_first(raw, 'prioridade_chamado', 'prioridade')),
        'data_abertura': _parse_iso_date(raw.get('data_abertura')),
        'data_resolucao': _parse_iso_date(raw.get('data_resolucao')),
        'data_aprovacao_recusa': _parse_iso_date(raw.get('data_aprovacao_recusa')),
        'data_escala': _parse_iso_date(raw.get('data_escala')),
        'usuario_abertura': _first(raw, 'usuario_abertura', 'nome_usuario') or '',
        'email_usuario': _first(raw, 'email_usuario') or '',
        'id_usuario_abertura': _to_int(raw.get('id_usuario_abertura')),
        'id_categoria': _to_int(_first(raw, 'id_categoria_chamado', 'fk_categorias_id_categoria')),
        'id_problema': _to_int(_first(raw, 'id_problema_chamado', 'fk_problemas_id_problema')),
        'motivo_rejeicao': motivo.strip() if isinstance(motivo, str) and motivo.strip() else None,
        'descricao_detalhada': raw.get('descricao_detalhada') or '',
    }


def normalize_solucao_ia(raw):
    raw = raw or {}
    feedback = raw.get('feedback_usuario') or raw.get('feedback')
    return {
        'id': _to_int(_first(raw, 'id_resposta_ia', 'id')),
        'id_chamado': _to_int(_first(raw, 'fk_chamados_id_chamado', 'id_chamado')),
        'solucao': _first(raw, 'solucao_ia', 'solucao') or '',
        'feedback': feedback if feedback in FEEDBACK_DESTINO else None,
        'data_resposta': _parse_iso_date(raw.get('data_resposta')),
        'data_feedback': _parse_iso_date(raw.get('data_feedback')),
    }


def normalize_usuario(raw):
    """Usuário da API (login ou /api/users) -> dict com nivel_acesso no topo."""
    raw = raw or {}
    perfil = raw.get('perfil') if isinstance(raw.get('perfil'), dict) else {}
    return {
        'id': _to_int(_first(raw, 'id_usuario', 'id')),
        'matricula': raw.get('matricula'),
        'nome': _first(raw, 'nome_usuario', 'name', 'nome') or '',
        'email': raw.get('email') or '',
        'setor': _first(raw, 'setor_usuario', 'setor') or '',
        'cargo': _first(raw, 'cargo_usuario', 'cargo') or '',
        'telefone': _first(raw, 'tel_usuarios', 'telefone') or '',
        'id_perfil': _to_int(_first(raw, 'id_perfil_usuario') or perfil.get('id')),
        'nome_perfil': _first(raw, 'nome_perfil') or perfil.get('nome') or '',
        'nivel_acesso': _to_int(_first(raw, 'nivel_acesso') or perfil.get('nivel_acesso')) or 0,
        'id_aprovador': _first(raw, 'id_aprovador_usuario', 'id_aprovador'),
    }


def normalize_backup(raw):
    raw = raw or {}
    return {
        'id_backup': _to_int(raw.get('id_backup')),
        'id_usuario_original': _to_int(raw.get('id_usuario_original')),
        'matricula': raw.get('matricula'),
        'nome': raw.get('nome_usuario') or '',
        'email': raw.get('email') or '',
        'nome_perfil': raw.get('nome_perfil') or '',
        'nivel_acesso': _to_int(raw.get('nivel_acesso')) or 0,
        'motivo_delecao': raw.get('motivo_delecao') or '',
        'usuario_que_deletou': raw.get('usuario_que_deletou') or '',
        'data_delecao': _parse_iso_date(raw.get('data_delecao')),
        'status': raw.get('status_backup') or raw.get('status') or '',
        'data_restauracao': _parse_iso_date(raw.get('data_restauracao')),
        'usuario_que_restaurou': raw.get('usuario_que_restaurou') or '',
    }


def check_chamado_invariants(chamado):
    """
    Retorna lista de violações (vazia = ok) para um chamado normalizado:
    datas na ordem do ciclo de vida e motivo de rejeição presente se e somente se Rejeitado.
    """
    problemas = []
    aberto = _naive(chamado.get('data_abertura'))
    if aberto:
        for campo in ('data_aprovacao_recusa', 'data_escala', 'data_resolucao'):
            dt = _naive(chamado.get(campo))
            if dt and dt < aberto:
                problemas.append(f'{campo} anterior a data_abertura')
    escala = _naive(chamado.get('data_escala'))
    resolucao = _naive(chamado.get('data_resolucao'))
    if escala and resolucao and resolucao < escala:
        problemas.append('data_resolucao anterior a data_escala')
    motivo = (chamado.get('motivo_rejeicao') or '').strip()
    if chamado.get('status') == REJEITADO:
        if len(motivo) < MIN_MOTIVO:
            problemas.append(f'chamado Rejeitado sem motivo de {MIN_MOTIVO}+ caracteres')
    elif motivo:
        problemas.append('motivo_rejeicao preenchido em chamado não rejeitado')
    if chamado.get('status') and chamado['status'] not in STATUS:
        problemas.append(f'status desconhecido: {chamado["status"]}')
    return problemas


def transicao_valida(de, para):
    return para in TRANSICOES.get(de, ())


# ---- Política de ações ----

APROVAR = 'aprovar'
REJEITAR = 'rejeitar'
VER_APROVACAO = 'ver_aprovacao'
VER_SOLUCAO_IA = 'ver_solucao_ia'
FEEDBACK_IA = 'feedback_ia'
RESOLVER = 'resolver'
ESCALAR = 'escalar'
RESOLVER_ESCALADO = 'resolver_escalado'
VER_ESCALADOS = 'ver_escalados'
VER_COM_ANALISTA = 'ver_com_analista'
VER_MEUS_CHAMADOS = 'ver_meus_chamados'
CRIAR_CHAMADO = 'criar_chamado'
GERENCIAR_USUARIOS = 'gerenciar_usuarios'
EDITAR_USUARIO = 'editar_usuario'
RESTAURAR_USUARIO = 'restaurar_usuario'
DESATIVAR_USUARIO = 'desativar_usuario'
VER_DASHBOARD = 'ver_dashboard'

# acao -> (nível mínimo, status exigidos do chamado ou None, exige ser o dono do chamado)
REGRAS = {
    APROVAR: (NIVEL_GESTOR, (ABERTO,), False),
    REJEITAR: (NIVEL_GESTOR, (ABERTO,), False),
    VER_APROVACAO: (NIVEL_GESTOR, None, False),
    VER_SOLUCAO_IA: (NIVEL_USUARIO, (AGUARDANDO_RESPOSTA,), True),
    FEEDBACK_IA: (NIVEL_USUARIO, (AGUARDANDO_RESPOSTA,), True),
    RESOLVER: (NIVEL_ANALISTA, (COM_ANALISTA,), False),
    ESCALAR: (NIVEL_ANALISTA, (COM_ANALISTA,), False),
    RESOLVER_ESCALADO: (NIVEL_GESTOR, (ESCALADO,), False),
    VER_ESCALADOS: (NIVEL_GESTOR, None, False),
    VER_COM_ANALISTA: (NIVEL_ANALISTA, None, False),
    VER_MEUS_CHAMADOS: (NIVEL_USUARIO, None, False),
    CRIAR_CHAMADO: (NIVEL_USUARIO, None, False),
    GERENCIAR_USUARIOS: (NIVEL_GERENTE, None, False),
    RESTAURAR_USUARIO: (NIVEL_GERENTE, None, False),
    DESATIVAR_USUARIO: (NIVEL_GERENTE, None, False),
}

# Ações sobre um chamado, na ordem em que aparecem na tela
ACOES_CHAMADO = (APROVAR, REJEITAR, VER_SOLUCAO_IA, FEEDBACK_IA, RESOLVER, ESCALAR, RESOLVER_ESCALADO)

# Ações que só podem ser enviadas com motivo >= MIN_MOTIVO
ACOES_COM_MOTIVO = (REJEITAR, ESCALAR, DESATIVAR_USUARIO)

# Dashboard: Analista, Gerente e Admin (sem Gestor)
NIVEIS_DASHBOARD = (NIVEL_ANALISTA, NIVEL_GERENTE, NIVEL_ADMIN)

# Modal aberto por cada ação
MODAL_POR_ACAO = {
    APROVAR: 'confirmar_aprovacao',
    REJEITAR: 'rejeitar',
    VER_SOLUCAO_IA: 'solucao_ia',
    FEEDBACK_IA: 'solucao_ia',
    RESOLVER: 'resolver',
    ESCALAR: 'escalar',
    RESOLVER_ESCALADO: 'resolver_escalado',
    CRIAR_CHAMADO: 'novo_chamado',
    RESTAURAR_USUARIO: 'confirmar_restauracao',
    EDITAR_USUARIO: 'usuario_form',
    GERENCIAR_USUARIOS: 'usuario_form',
}


def nivel_acesso(user):
    """nivel_acesso do usuário (aceita dict normalizado ou o formato do login com perfil)."""
    if not user:
        return 0
    nivel = user.get('nivel_acesso')
    if nivel is None and isinstance(user.get('perfil'), dict):
        nivel = user['perfil'].get('nivel_acesso')
    return _to_int(nivel) or 0


def is_dono(user, chamado):
    """True se o chamado foi aberto pelo usuário (por e-mail ou id)."""
    if not user or not chamado:
        return False
    email = (user.get('email') or '').strip().lower()
    dono_email = (chamado.get('email_usuario') or '').strip().lower()
    if email and dono_email:
        return email == dono_email
    uid = _to_int(user.get('id'))
    dono_id = _to_int(chamado.get('id_usuario_abertura'))
    return uid is not None and uid == dono_id


def _status_do(alvo):
    return alvo.get('status') or alvo.get('descricao_status_chamado') or ''


def can_edit_user(user, alvo):
    """Admin edita qualquer um; gerente edita perfis abaixo de admin; todos editam o próprio perfil."""
    nivel = nivel_acesso(user)
    if not nivel:
        return False
    if nivel >= NIVEL_ADMIN:
        return True
    if alvo is None:
        return nivel >= NIVEL_GERENTE
    if nivel >= NIVEL_GERENTE and nivel_acesso(alvo) < NIVEL_ADMIN:
        return True
    uid = _to_int(user.get('id'))
    return uid is not None and uid == _to_int(alvo.get('id') or alvo.get('id_usuario'))


def can_create_profile(user, nivel_perfil):
    """Admin cria qualquer perfil; gerente cria perfis abaixo de admin."""
    nivel = nivel_acesso(user)
    if nivel >= NIVEL_ADMIN:
        return True
    return nivel >= NIVEL_GERENTE and (_to_int(nivel_perfil) or 0) < NIVEL_ADMIN


def can_perform(acao, user, alvo=None):
    """
    Política única de permissões: True se o usuário pode executar a ação.
    alvo: chamado (ações de chamado), backup (restaurar) ou usuário (editar, desativar).
    Sem alvo, só o nível de acesso é verificado.
    """
    nivel = nivel_acesso(user)
    if nivel < NIVEL_USUARIO:
        return False
    if acao == EDITAR_USUARIO:
        return can_edit_user(user, alvo)
    if acao == VER_DASHBOARD:
        return nivel in NIVEIS_DASHBOARD
    regra = REGRAS.get(acao)
    if regra is None:
        return False
    minimo, status_exigidos, exige_dono = regra
    if nivel < minimo:
        return False
    if alvo is None:
        return True
    if acao == RESTAURAR_USUARIO:
        return (alvo.get('status') or alvo.get('status_backup')) == BACKUP_ATIVO
    if acao == DESATIVAR_USUARIO:
        return can_edit_user(user, alvo)
    if status_exigidos is not None and _status_do(alvo) not in status_exigidos:
        return False
    if exige_dono and not is_dono(user, alvo):
        return False
    return True


def acoes_disponiveis(user, chamado):
    """Ações de chamado que o usuário pode executar agora, na ordem da tela."""
    return [a for a in ACOES_CHAMADO if can_perform(a, user, chamado)]


def proximo_modal(acao):
    return MODAL_POR_ACAO.get(acao)


def menu_visivel(user):
    """Itens do menu lateral visíveis para o usuário."""
    itens = [('home', 'Home'), ('chamados', 'Chamados')]
    if can_perform(VER_DASHBOARD, user):
        itens.insert(1, ('dashboard', 'Dashboard'))
    if can_perform(GERENCIAR_USUARIOS, user):
        itens.append(('usuarios', 'Gerenciar Usuários'))
        itens.append(('usuarios-deletados', 'Restaurar Usuários'))
    return itens


# ---- Validação local ----

def validar_motivo(texto, minimo=MIN_MOTIVO, mensagem=None):
    """Motivo (rejeição, escalonamento, desativação) com espaços removidos; ValidationError se curto."""
    motivo = (texto or '').strip()
    if len(motivo) < minimo:
        raise ValidationError(mensagem or f'Motivo deve ter pelo menos {minimo} caracteres')
    return motivo


def motivo_valido(texto, minimo=MIN_MOTIVO):
    return len((texto or '').strip()) >= minimo


def pode_enviar(acao, user, alvo, texto=None):
    """Estado do botão de envio: ação permitida e, quando exigido, motivo com 10+ caracteres."""
    if not can_perform(acao, user, alvo):
        return False
    if acao in ACOES_COM_MOTIVO:
        return motivo_valido(texto)
    return True


def validar_relatorio(texto):
    relatorio = (texto or '').strip()
    if len(relatorio) < MIN_RELATORIO:
        raise ValidationError(f'O relatório deve ter no mínimo {MIN_RELATORIO} caracteres')
    return relatorio


CAMPOS_NOVO_CHAMADO = (
    ('titulo', 'Título é obrigatório'),
    ('categoria', 'Categoria é obrigatória'),
    ('problema', 'Tipo de problema é obrigatório'),
    ('prioridade', 'Prioridade é obrigatória'),
)


def validar_novo_chamado(form):
    """Valida o formulário de novo chamado; devolve o form com textos sem espaços nas pontas."""
    form = {k: (v.strip() if isinstance(v, str) else v) for k, v in (form or {}).items()}
    for campo, msg in CAMPOS_NOVO_CHAMADO:
        if not form.get(campo):
            raise ValidationError(msg)
    if not is_prioridade_valida(form['prioridade']):
        raise ValidationError('Prioridade inválida')
    if len(form.get('descricao') or '') < MIN_DESCRICAO:
        raise ValidationError(f'Descrição deve ter pelo menos {MIN_DESCRICAO} caracteres')
    return form


def montar_payload_chamado(form):
    """Formulário validado -> corpo do POST /api/chamados."""
    prioridade = form['prioridade']
    if isinstance(prioridade, int):
        prioridade = PRIORIDADE_TEXTOS[prioridade]
    return {
        'prioridade_chamado': prioridade,
        'descricao_categoria': form['categoria'],
        'descricao_problema': form['problema'],
        'descricao_detalhada': f'Título: {form["titulo"]}\n\nDescrição: {form["descricao"]}',
    }


def montar_payload_usuario(form, criar=True):
    """Formulário de usuário -> corpo do POST/PUT /api/users."""
    nome = ' '.join(p for p in ((form.get('nome') or '').strip(), (form.get('sobrenome') or '').strip()) if p)
    if not nome:
        raise ValidationError('Nome é obrigatório')
    email = (form.get('email') or '').strip()
    if not email or '@' not in email:
        raise ValidationError('Email inválido')
    id_perfil = _to_int(form.get('id_perfil_usuario') or form.get('id_perfil'))
    if id_perfil is None:
        raise ValidationError('Perfil é obrigatório')
    payload = {
        'nome_usuario': nome,
        'setor_usuario': (form.get('setor') or '').strip(),
        'cargo_usuario': (form.get('cargo') or '').strip(),
        'email': email,
        'tel_usuarios': (form.get('telefone') or '').strip(),
        'id_perfil_usuario': id_perfil,
    }
    if criar and form.get('senha'):
        payload['senha'] = form['senha']
    return payload
