#!/usr/bin/env python3
"""
Dashboard de chamados no terminal.

Lista as visões do backend (meus chamados, aprovação, escalados, fila do analista, usuários,
usuários deletados) como tabela de texto, opcionalmente exporta HTML, e executa as ações
(aprovar, rejeitar, resolver, escalar, feedback da IA, novo chamado, restaurar usuário).

Uso:
  python helpdesk_dashboard.py chamados --html chamados.html
  python helpdesk_dashboard.py aprovar 123
  python helpdesk_dashboard.py escalar 45 "Precisa de acesso de administrador"
"""

import argparse
import html
import json
import sys
from datetime import datetime

import helpdesk_api
from helpdesk_dispatcher import Dispatcher
from helpdesk_errors import AccessDeniedError, RequestError
from helpdesk_lifecycle import FEEDBACK_DESTINO, VER_DASHBOARD, format_data, get_prioridade_texto
from helpdesk_notify import Notifier, print_toast
from helpdesk_repository import Repositorio, Sessao

COLUMNS_CHAMADO = ['id', 'titulo', 'status', 'prioridade', 'categoria', 'usuario_abertura', 'data_abertura']
COLUMNS_USUARIO = ['id', 'nome', 'email', 'setor', 'cargo', 'nome_perfil', 'nivel_acesso']
COLUMNS_BACKUP = ['id_backup', 'nome', 'email', 'nome_perfil', 'status', 'motivo_delecao', 'data_delecao']

# subcomando -> (visão do repositório, colunas, título)
LISTAGENS = {
    'chamados': ('meus', COLUMNS_CHAMADO, 'Meus Chamados'),
    'aprovacao': ('aprovacao', COLUMNS_CHAMADO, 'Chamados para Aprovação'),
    'escalados': ('escalados', COLUMNS_CHAMADO, 'Chamados Escalados'),
    'analista': ('com_analista', COLUMNS_CHAMADO, 'Chamados com Analista'),
    'usuarios': ('usuarios', COLUMNS_USUARIO, 'Usuários'),
    'deletados': ('deletados', COLUMNS_BACKUP, 'Usuários Deletados'),
}


def format_field_value(column, val):
    if val is None:
        return ''
    if column == 'prioridade':
        return get_prioridade_texto(val)
    if isinstance(val, datetime):
        return format_data(val)
    return str(val)


def get_row_values(item, columns):
    return {c: format_field_value(c, item.get(c)) for c in columns}


def print_table(items, columns, file=None):
    """Print a text table to stdout."""
    out = file or sys.stdout
    rows = [get_row_values(it, columns) for it in items]
    widths = {c: max(len(c), max((len(r[c]) for r in rows), default=0)) for c in columns}
    widths = {c: min(w, 50) for c, w in widths.items()}

    sep = '-' * (sum(widths.values()) + 3 * (len(columns) - 1))
    print(sep, file=out)
    print(' | '.join(c[:widths[c]].ljust(widths[c]) for c in columns), file=out)
    print(sep, file=out)
    for r in rows:
        print(' | '.join(r[c][:widths[c]].ljust(widths[c]) for c in columns), file=out)
    print(sep, file=out)
    print(f'Total: {len(items)}', file=out)


def write_html(items, columns, output_path, titulo):
    """Grava a listagem como página HTML."""
    rows = [get_row_values(it, columns) for it in items]
    cols_header = ''.join(f'<th>{html.escape(c)}</th>' for c in columns)
    table_body = '\n'.join(
        '<tr>' + ''.join(f'<td>{html.escape(r[c])}</td>' for c in columns) + '</tr>'
        for r in rows
    )
    gerado = format_data(datetime.now())

    page = f'''<!DOCTYPE html>
<html lang="pt-BR">
<head>
  <meta charset="UTF-8">
  <title>{html.escape(titulo)} - Helpdesk</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; margin: 20px; background: #f8fafc; }}
    h1 {{ color: #1e293b; }}
    .meta {{ color: #64748b; font-size: 12px; margin-bottom: 16px; }}
    table {{ border-collapse: collapse; background: #fff; box-shadow: 0 1px 3px rgba(0,0,0,0.1); border-radius: 8px; overflow: hidden; }}
    th {{ background: #2563eb; color: #fff; padding: 10px 14px; text-align: left; }}
    td {{ padding: 8px 14px; border-bottom: 1px solid #e2e8f0; }}
    tr:hover {{ background: #f1f5f9; }}
  </style>
</head>
<body>
  <h1>{html.escape(titulo)}</h1>
  <div class="meta">Gerado em {gerado}</div>
  <table>
    <thead><tr>{cols_header}</tr></thead>
    <tbody>
{table_body}
    </tbody>
  </table>
  <p class="meta">Total: {len(items)}</p>
</body>
</html>
'''
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(page)
    print(f'Dashboard salvo em {output_path}', file=sys.stderr)


def build_parser():
    parser = argparse.ArgumentParser(description='Dashboard de chamados (helpdesk) - listagens e ações')
    parser.add_argument('--email', default=None, help='E-mail do usuário (padrão: HELPDESK_USER_EMAIL)')
    parser.add_argument('--senha', default=None, help='Faz login com a senha em vez de só usar o e-mail')
    parser.add_argument('--nivel', type=int, choices=range(1, 6), default=None,
                        help='Nível de acesso (1-5) quando o perfil não puder ser consultado')
    sub = parser.add_subparsers(dest='comando', required=True)

    for nome, (_visao, _cols, titulo) in LISTAGENS.items():
        p = sub.add_parser(nome, help=f'Lista: {titulo}')
        p.add_argument('--html', metavar='FILE', default=None, help='Também grava a listagem em HTML')

    p = sub.add_parser('stats', help='Estatísticas do backend (JSON)')
    p.add_argument('--nome', default='dashboard-stats', choices=helpdesk_api.ESTATISTICAS)

    p = sub.add_parser('aprovar', help='Aprova um chamado Aberto')
    p.add_argument('id', type=int)
    p = sub.add_parser('rejeitar', help='Rejeita um chamado Aberto (motivo com 10+ caracteres)')
    p.add_argument('id', type=int)
    p.add_argument('motivo')
    p = sub.add_parser('resolver', help='Resolve um chamado Com Analista')
    p.add_argument('id', type=int)
    p.add_argument('--relatorio', default=None, help='Relatório da resolução (20+ caracteres)')
    p = sub.add_parser('escalar', help='Escala um chamado Com Analista para o gerente')
    p.add_argument('id', type=int)
    p.add_argument('motivo')
    p = sub.add_parser('resolver-escalado', help='Resolve um chamado Escalado')
    p.add_argument('id', type=int)
    p.add_argument('--relatorio', default=None)
    p = sub.add_parser('solucao-ia', help='Mostra a solução proposta pela IA')
    p.add_argument('id', type=int)
    p = sub.add_parser('feedback', help='Feedback da solução da IA')
    p.add_argument('id', type=int)
    p.add_argument('valor', choices=sorted(FEEDBACK_DESTINO))
    p = sub.add_parser('novo', help='Abre um novo chamado')
    p.add_argument('--titulo', required=True)
    p.add_argument('--categoria', required=True)
    p.add_argument('--problema', required=True)
    p.add_argument('--prioridade', required=True, help='baixa, media, alta ou urgente')
    p.add_argument('--descricao', required=True)
    p = sub.add_parser('restaurar', help='Restaura um usuário deletado')
    p.add_argument('id_backup', type=int)
    return parser


def _sessao(args):
    email = args.email or helpdesk_api.get_user_email()
    if args.senha:
        return Sessao.login(email, args.senha)
    return Sessao.from_email(email, args.nivel)


def _listar(repo, args):
    visao, columns, titulo = LISTAGENS[args.comando]
    print(f'Carregando {titulo}...', file=sys.stderr)
    itens = repo.carregar(visao)
    print_table(itens, columns)
    if args.html:
        write_html(itens, columns, args.html, titulo)


def _executar(dispatcher, args):
    c = args.comando
    if c == 'aprovar':
        return dispatcher.aprovar(args.id)
    if c == 'rejeitar':
        return dispatcher.rejeitar(args.id, args.motivo)
    if c == 'resolver':
        return dispatcher.resolver(args.id, args.relatorio)
    if c == 'escalar':
        return dispatcher.escalar(args.id, args.motivo)
    if c == 'resolver-escalado':
        return dispatcher.resolver_escalado(args.id, args.relatorio)
    if c == 'feedback':
        return dispatcher.feedback_ia(args.id, args.valor)
    if c == 'restaurar':
        return dispatcher.restaurar_usuario(args.id_backup)
    if c == 'solucao-ia':
        solucao = dispatcher.ver_solucao_ia(args.id)
        if solucao is None:
            return False
        print(solucao['solucao'] or '(sem texto)')
        if solucao['feedback']:
            print(f'Feedback já registrado: {solucao["feedback"]}', file=sys.stderr)
        return True
    if c == 'novo':
        form = {
            'titulo': args.titulo,
            'categoria': args.categoria,
            'problema': args.problema,
            'prioridade': args.prioridade,
            'descricao': args.descricao,
        }
        ok = dispatcher.criar_chamado(form)
        if ok:
            print_table(dispatcher.repositorio.get('meus'), COLUMNS_CHAMADO)
        return ok
    raise ValueError(f'Comando desconhecido: {c}')


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        sessao = _sessao(args)
    except RuntimeError as e:
        print(f'Credentials error: {e}', file=sys.stderr)
        print('Set HELPDESK_USER_EMAIL (or use .env / --email).', file=sys.stderr)
        return 1
    except RequestError as e:
        print(f'Login falhou: {e.message}', file=sys.stderr)
        return 1

    repo = Repositorio(sessao)
    try:
        if args.comando in LISTAGENS:
            _listar(repo, args)
            return 0
        if args.comando == 'stats':
            if not sessao.pode(VER_DASHBOARD):
                raise AccessDeniedError('Apenas analistas, gerentes e administradores podem ver o dashboard.')
            data = helpdesk_api.fetch_estatisticas(sessao.email, args.nome)
            print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            return 0
        notifier = Notifier()
        notifier.subscribe(print_toast)
        ok = _executar(Dispatcher(sessao, repo, notifier), args)
        return 0 if ok else 1
    except AccessDeniedError as e:
        print(f'Acesso negado: {e.message}', file=sys.stderr)
        return 2
    except RequestError as e:
        print(f'Erro: {e.message}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
