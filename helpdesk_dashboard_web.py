#!/usr/bin/env python3
"""
Dashboard de chamados - versão web (Flask). Uma página HTML + rotas JSON.

Cada usuário logado tem seu próprio Dispatcher (sessão, visões carregadas e notificações).
As rotas que alteram dados devolvem {'ok', 'notificacoes', 'modal'}; em erro também 'error'.
"""

import os
import sys
import tempfile
import uuid
import webbrowser
from datetime import datetime
from threading import Timer

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from flask import Flask, Response, jsonify, render_template_string, request, session

import helpdesk_api
from helpdesk_dashboard import LISTAGENS, write_html
from helpdesk_dispatcher import Dispatcher
from helpdesk_errors import AccessDeniedError, RequestError
from helpdesk_lifecycle import (
    VER_DASHBOARD,
    acoes_disponiveis,
    can_perform,
    get_prioridade_texto,
    get_prioridades_disponiveis,
    menu_visivel,
)
from helpdesk_notify import Notifier
from helpdesk_repository import VISOES, Repositorio, Sessao

app = Flask(__name__)
app.secret_key = os.environ.get('FLASK_SECRET_KEY', 'helpdesk-dev-secret')

_dispatchers = {}  # id da sessão Flask -> Dispatcher (uma aba/navegador por entrada)
MAX_SESSOES = int(os.environ.get('HELPDESK_MAX_SESSOES', 200))

# visão do repositório -> colunas/título usados no export HTML
_EXPORT = {visao: (cols, titulo) for visao, cols, titulo in LISTAGENS.values()}


HTML_TEMPLATE = '''
<!DOCTYPE html>
<html lang="pt-BR">
<head>
  <meta charset="UTF-8">
  <title>Helpdesk - Chamados</title>
  <style>
    body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; margin: 0; background: #f8fafc; color: #1e293b; }
    header { background: #1e293b; color: #fff; padding: 12px 20px; display: flex; justify-content: space-between; }
    nav { width: 220px; background: #fff; border-right: 1px solid #e2e8f0; min-height: calc(100vh - 48px); float: left; }
    nav a { display: block; padding: 10px 16px; color: #334155; text-decoration: none; cursor: pointer; }
    nav a:hover { background: #f1f5f9; }
    main { margin-left: 240px; padding: 20px; }
    table { border-collapse: collapse; background: #fff; width: 100%; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
    th { background: #2563eb; color: #fff; padding: 8px 12px; text-align: left; }
    td { padding: 8px 12px; border-bottom: 1px solid #e2e8f0; }
    button { margin-right: 4px; padding: 4px 10px; border: 0; border-radius: 4px; cursor: pointer; background: #2563eb; color: #fff; }
    button:disabled { background: #94a3b8; cursor: default; }
    #toasts { position: fixed; top: 16px; right: 16px; width: 320px; }
    .toast { color: #fff; padding: 10px 14px; border-radius: 6px; margin-bottom: 8px; white-space: pre-line; }
    #modal { display: none; position: fixed; inset: 0; background: rgba(0,0,0,0.4); }
    #modal .box { background: #fff; width: 460px; margin: 10vh auto; padding: 20px; border-radius: 8px; }
    #modal textarea { width: 100%; min-height: 90px; }
    #login { max-width: 320px; margin: 15vh auto; background: #fff; padding: 24px; border-radius: 8px; }
    #login input { width: 100%; margin-bottom: 10px; padding: 6px; }
  </style>
</head>
<body>
  <div id="toasts"></div>
  {% if not user %}
  <div id="login">
    <h2>Entrar</h2>
    <input id="email" type="email" placeholder="E-mail">
    <input id="senha" type="password" placeholder="Senha">
    <button onclick="entrar()">Entrar</button>
  </div>
  {% else %}
  <header>
    <span>Helpdesk - {{ user.nome or user.email }} (nível {{ user.nivel_acesso }})</span>
    <button onclick="sair()">Sair</button>
  </header>
  <nav>
    {% for key, label in menu %}<a onclick="abrirVisao('{{ key }}')">{{ label }}</a>{% endfor %}
    {% for visao, titulo in listas %}<a onclick="abrirVisao('{{ visao }}')">{{ titulo }}</a>{% endfor %}
  </nav>
  <main>
    <h2 id="titulo">Home</h2>
    <div id="conteudo"></div>
  </main>
  <div id="modal"><div class="box">
    <h3 id="modal-titulo"></h3>
    <div id="modal-corpo"></div>
    <div style="margin-top: 12px;">
      <button id="modal-enviar" onclick="enviarModal()">Enviar</button>
      <button onclick="fecharModal()" style="background: #64748b;">Cancelar</button>
    </div>
  </div></div>
  {% endif %}
  <script>
    const VISOES = { chamados: 'meus', home: 'meus', usuarios: 'usuarios', 'usuarios-deletados': 'deletados' };
    const NOMES_ACAO = { aprovar: 'Aprovar', rejeitar: 'Rejeitar', ver_solucao_ia: 'Solução IA', resolver: 'Resolver',
                         escalar: 'Escalar', resolver_escalado: 'Resolver escalado' };
    const COM_TEXTO = { rejeitar: ['motivo', 10], escalar: ['motivo', 10], resolver: ['relatorio', 20],
                        resolver_escalado: ['relatorio', 20] };
    let modalAtual = null;

    function escapeHtml(s) {
      return String(s ?? '').replace(/&/g, '&amp;').replace(/</g, '&lt;').replace(/>/g, '&gt;')
        .replace(/"/g, '&quot;').replace(/'/g, '&#39;');
    }

    function toast(n) {
      const el = document.createElement('div');
      el.className = 'toast'; el.style.background = n.color;
      el.textContent = n.title + ' ' + n.message;
      document.getElementById('toasts').appendChild(el);
      setTimeout(() => el.remove(), 5000);
    }
    async function chamar(url, metodo, corpo) {
      const r = await fetch(url, { method: metodo || 'GET', headers: { 'Content-Type': 'application/json' },
                                   body: corpo ? JSON.stringify(corpo) : undefined });
      const data = await r.json();
      (data.notificacoes || []).forEach(toast);
      if (!r.ok && !(data.notificacoes || []).length) toast({ color: '#dc2626', title: 'Erro!', message: data.error });
      return data;
    }
    async function entrar() {
      const data = await chamar('/login', 'POST', { email: document.getElementById('email').value,
                                                    senha: document.getElementById('senha').value });
      if (data.user) location.reload();
    }
    async function sair() { await chamar('/logout', 'POST'); location.reload(); }

    async function abrirVisao(key) {
      if (key === 'dashboard') {
        const stats = await chamar('/api/estatisticas/dashboard-stats');
        document.getElementById('titulo').textContent = 'Dashboard';
        document.getElementById('conteudo').innerHTML = '<pre>' + escapeHtml(JSON.stringify(stats.data || stats.error, null, 2)) + '</pre>';
        return;
      }
      const visao = VISOES[key] || key;
      document.getElementById('titulo').textContent = key;
      const data = await chamar('/api/visoes/' + visao);
      const itens = data.itens || [];
      if (!itens.length) { document.getElementById('conteudo').innerHTML = '<p>' + escapeHtml(data.error || 'Nenhum item.') + '</p>'; return; }
      const cols = Object.keys(itens[0]).filter(c => c !== 'acoes');
      let html = '<table><tr>' + cols.map(c => '<th>' + escapeHtml(c) + '</th>').join('') + '<th></th></tr>';
      itens.forEach(it => {
        html += '<tr>' + cols.map(c => '<td>' + escapeHtml(it[c]) + '</td>').join('') + '<td>';
        (it.acoes || []).filter(a => a !== 'feedback_ia').forEach(a => { html += '<button onclick="abrirModal(\\'' + a + '\\',' + Number(it.id) + ')">' + escapeHtml(NOMES_ACAO[a] || a) + '</button>'; });
        html += '</td></tr>';
      });
      document.getElementById('conteudo').innerHTML = html + '</table>';
      window.visaoAtual = key;
    }
    async function abrirModal(acao, id) {
      modalAtual = { acao: acao, id: id };
      document.getElementById('modal-titulo').textContent = (NOMES_ACAO[acao] || acao) + ' #' + id;
      let corpo = '';
      if (acao === 'ver_solucao_ia') {
        const data = await chamar('/api/chamados/' + id + '/solucao-ia');
        if (!data.solucao) return;
        corpo = '<p>' + escapeHtml(data.solucao.solucao) + '</p>' +
          '<button onclick="feedback(\\'DEU_CERTO\\')">Deu certo</button><button onclick="feedback(\\'DEU_ERRADO\\')">Deu errado</button>';
        document.getElementById('modal-enviar').style.display = 'none';
      } else {
        document.getElementById('modal-enviar').style.display = '';
        if (COM_TEXTO[acao]) corpo = '<textarea id="texto" oninput="validarTexto()"></textarea>';
        else corpo = '<p>Confirmar?</p>';
      }
      document.getElementById('modal-corpo').innerHTML = corpo;
      document.getElementById('modal').style.display = 'block';
      validarTexto();
    }
    function validarTexto() {
      const regra = modalAtual && COM_TEXTO[modalAtual.acao];
      const el = document.getElementById('texto');
      document.getElementById('modal-enviar').disabled = !!(regra && (!el || el.value.trim().length < regra[1]));
    }
    function fecharModal() { document.getElementById('modal').style.display = 'none'; modalAtual = null; }
    async function enviarModal() {
      const btn = document.getElementById('modal-enviar'); btn.disabled = true;
      const a = modalAtual.acao, id = modalAtual.id, corpo = {};
      if (COM_TEXTO[a]) corpo[COM_TEXTO[a][0]] = document.getElementById('texto').value;
      const data = await chamar('/api/chamados/' + id + '/' + a.replace('_', '-'), 'POST', corpo);
      if (!data.modal) fecharModal(); else btn.disabled = false;
      if (window.visaoAtual) abrirVisao(window.visaoAtual);
    }
    async function feedback(valor) {
      const data = await chamar('/api/chamados/' + modalAtual.id + '/feedback-ia', 'POST', { feedback: valor });
      if (!data.modal) fecharModal();
      if (window.visaoAtual) abrirVisao(window.visaoAtual);
    }
  </script>
</body>
</html>
'''


def _json_item(item):
    """Datas em ISO e prioridade em texto."""
    out = {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in item.items()}
    if 'prioridade' in item:
        out['prioridade'] = get_prioridade_texto(item['prioridade'])
    return out


def get_dispatcher():
    """Dispatcher do usuário da sessão Flask; AccessDeniedError se ninguém logou."""
    user = session.get('user')
    if not user:
        raise AccessDeniedError('Usuário não autenticado')
    sid = session.get('sid')
    if not sid:
        sid = session['sid'] = uuid.uuid4().hex
    d = _dispatchers.get(sid)
    if d is None:
        d = _novo_dispatcher(sid, Sessao(user))
    return d


def _novo_dispatcher(sid, sessao):
    # sessões sem logout não ficam para sempre: descarta as mais antigas
    while len(_dispatchers) >= MAX_SESSOES:
        _dispatchers.pop(next(iter(_dispatchers)))
    d = _dispatchers[sid] = Dispatcher(sessao, Repositorio(sessao), Notifier())
    return d


def _resultado(d, ok):
    body = {'ok': bool(ok), 'notificacoes': d.notifier.drain(), 'modal': d.estado.modal}
    if ok:
        return jsonify(body)
    body['error'] = d.estado.erro
    return jsonify(body), d.estado.status_code or 400


def _payload():
    return request.get_json(silent=True) or {}


@app.errorhandler(AccessDeniedError)
def acesso_negado(e):
    status = 401 if not session.get('user') else 403
    return jsonify({'error': e.message}), status


@app.errorhandler(RequestError)
def erro_backend(e):
    return jsonify({'error': e.message}), e.status_code or 502


@app.route('/')
def index():
    user = session.get('user')
    menu = menu_visivel(user) if user else []
    listas = []
    if user:
        sessao = Sessao(user)
        listas = [(v, t) for v, _c, t in LISTAGENS.values()
                  if v not in ('meus', 'usuarios', 'deletados') and sessao.pode(VISOES[v][0])]
    return render_template_string(HTML_TEMPLATE, user=user, menu=menu, listas=listas)


@app.route('/login', methods=['POST'])
def login():
    data = _payload()
    email = (data.get('email') or '').strip()
    senha = data.get('senha') or data.get('password') or ''
    if not email or not senha:
        return jsonify({'error': 'Informe e-mail e senha'}), 400
    sessao = Sessao.login(email, senha)
    _dispatchers.pop(session.get('sid'), None)
    session['user'] = sessao.to_dict()
    session['sid'] = uuid.uuid4().hex
    _novo_dispatcher(session['sid'], sessao)
    return jsonify({'user': sessao.to_dict(), 'menu': menu_visivel(sessao.user)})


@app.route('/logout', methods=['POST'])
def logout():
    session.pop('user', None)
    _dispatchers.pop(session.pop('sid', None), None)
    return jsonify({'ok': True})


@app.route('/api/sessao')
def api_sessao():
    d = get_dispatcher()
    return jsonify({
        'user': d.sessao.to_dict(),
        'menu': menu_visivel(d.sessao.user),
        'prioridades': get_prioridades_disponiveis(),
    })


@app.route('/api/visoes/<visao>')
def api_visao(visao):
    if visao not in VISOES:
        return jsonify({'error': f'Visão desconhecida: {visao}'}), 404
    d = get_dispatcher()
    itens = d.repositorio.carregar(visao)
    out = []
    for it in itens:
        j = _json_item(it)
        if visao not in ('usuarios', 'deletados'):
            j['acoes'] = acoes_disponiveis(d.sessao.user, it)
        out.append(j)
    return jsonify({'itens': out, 'notificacoes': d.notifier.drain()})


@app.route('/api/acoes/<int:id_chamado>')
def api_acoes(id_chamado):
    d = get_dispatcher()
    chamado = d.repositorio.buscar_chamado(id_chamado)
    return jsonify({'id': id_chamado, 'status': chamado['status'],
                    'acoes': acoes_disponiveis(d.sessao.user, chamado)})


@app.route('/api/modal', methods=['POST'])
def api_modal():
    d = get_dispatcher()
    data = _payload()
    alvo = None
    if data.get('id') is not None:
        alvo = d.repositorio.buscar_chamado(int(data['id']))
    modal = d.abrir(data.get('acao'), alvo)
    return jsonify({'modal': modal, 'estado': d.estado.to_dict()})


@app.route('/api/modal/fechar', methods=['POST'])
def api_modal_fechar():
    d = get_dispatcher()
    d.fechar()
    return jsonify({'modal': None})


# ---- chamados ----

@app.route('/api/chamados', methods=['POST'])
def api_novo_chamado():
    d = get_dispatcher()
    return _resultado(d, d.criar_chamado(_payload()))


@app.route('/api/chamados/<int:id_chamado>/aprovar', methods=['POST'])
def api_aprovar(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.aprovar(id_chamado))


@app.route('/api/chamados/<int:id_chamado>/rejeitar', methods=['POST'])
def api_rejeitar(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.rejeitar(id_chamado, _payload().get('motivo')))


@app.route('/api/chamados/<int:id_chamado>/resolver', methods=['POST'])
def api_resolver(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.resolver(id_chamado, _payload().get('relatorio')))


@app.route('/api/chamados/<int:id_chamado>/escalar', methods=['POST'])
def api_escalar(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.escalar(id_chamado, _payload().get('motivo')))


@app.route('/api/chamados/<int:id_chamado>/resolver-escalado', methods=['POST'])
def api_resolver_escalado(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.resolver_escalado(id_chamado, _payload().get('relatorio')))


@app.route('/api/chamados/<int:id_chamado>/solucao-ia')
def api_solucao_ia(id_chamado):
    d = get_dispatcher()
    solucao = d.ver_solucao_ia(id_chamado)
    if solucao is None:
        return _resultado(d, False)
    return jsonify({'solucao': _json_item(solucao), 'modal': d.estado.modal,
                    'notificacoes': d.notifier.drain()})


@app.route('/api/chamados/<int:id_chamado>/feedback-ia', methods=['POST'])
def api_feedback_ia(id_chamado):
    d = get_dispatcher()
    return _resultado(d, d.feedback_ia(id_chamado, _payload().get('feedback')))


# ---- usuários ----

@app.route('/api/usuarios', methods=['POST'])
def api_criar_usuario():
    d = get_dispatcher()
    return _resultado(d, d.criar_usuario(_payload()))


@app.route('/api/usuarios/<int:id_usuario>', methods=['PUT'])
def api_editar_usuario(id_usuario):
    d = get_dispatcher()
    return _resultado(d, d.editar_usuario(id_usuario, _payload()))


@app.route('/api/usuarios/<int:id_usuario>', methods=['DELETE'])
def api_desativar_usuario(id_usuario):
    d = get_dispatcher()
    return _resultado(d, d.desativar_usuario(id_usuario, _payload().get('motivo')))


@app.route('/api/usuarios/restaurar/<int:id_backup>', methods=['POST'])
def api_restaurar_usuario(id_backup):
    d = get_dispatcher()
    return _resultado(d, d.restaurar_usuario(id_backup))


@app.route('/api/perfis')
def api_perfis():
    return jsonify({'perfis': helpdesk_api.fetch_perfis()})


@app.route('/api/estatisticas/<nome>')
def api_estatisticas(nome):
    d = get_dispatcher()
    if not can_perform(VER_DASHBOARD, d.sessao.user):
        raise AccessDeniedError('Apenas analistas, gerentes e administradores podem ver o dashboard.')
    if nome not in helpdesk_api.ESTATISTICAS:
        return jsonify({'error': f'Estatística desconhecida: {nome}'}), 404
    return jsonify({'nome': nome, 'data': helpdesk_api.fetch_estatisticas(d.sessao.email, nome)})


@app.route('/export/<visao>')
def export(visao):
    if visao not in _EXPORT:
        return jsonify({'error': f'Visão desconhecida: {visao}'}), 404
    d = get_dispatcher()
    itens = d.repositorio.visoes.get(visao)
    if itens is None:
        itens = d.repositorio.carregar(visao)
    columns, titulo = _EXPORT[visao]
    path = os.path.join(tempfile.gettempdir(), f'helpdesk_{visao}.html')
    write_html(itens, columns, path, titulo)
    with open(path, 'rb') as f:
        body = f.read()
    os.remove(path)
    return Response(body, mimetype='text/html',
                    headers={'Content-Disposition': f'attachment; filename={visao}.html'})


def open_browser(port):
    webbrowser.open(f'http://127.0.0.1:{port}/')


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    print(f'Helpdesk Dashboard (web) em http://127.0.0.1:{port}/', file=sys.stderr)
    print(f'Backend: {helpdesk_api.API_URL}', file=sys.stderr)
    print('Feche o servidor com Ctrl+C.', file=sys.stderr)
    Timer(1, lambda: open_browser(port)).start()
    app.run(host='127.0.0.1', port=port, debug=False, use_reloader=False)
