#!/usr/bin/env python3
"""Debug: imprime o que o backend retorna para um chamado (JSON cru + versão normalizada)."""
import json
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from dotenv import load_dotenv
load_dotenv()

from helpdesk_api import API_URL, fetch_chamado, fetch_chamados, get_user_email
from helpdesk_errors import RequestError
from helpdesk_lifecycle import acoes_disponiveis, check_chamado_invariants, normalize_chamado


def main():
    id_chamado = sys.argv[1] if len(sys.argv) > 1 else None
    if not id_chamado:
        print("Uso: python debug_helpdesk_api.py [ID_CHAMADO]")
        print("Ex.: python debug_helpdesk_api.py 123")
        print("Se não passar id, pega o primeiro chamado de GET /api/chamados e inspeciona.")
    email = get_user_email()
    print("Backend:", API_URL, " x-user-email:", email)
    try:
        if id_chamado:
            raw = fetch_chamado(email, id_chamado)
        else:
            lista = fetch_chamados(email)
            if not lista:
                print("Nenhum chamado encontrado.")
                return
            raw = lista[0]
    except RequestError as e:
        print(f"Erro ({e.status_code or 'conexão'}): {e.message}")
        sys.exit(1)
    print("Campos presentes (keys):", sorted((raw or {}).keys()))
    print(json.dumps(raw, indent=2, ensure_ascii=False, default=str))
    print()
    chamado = normalize_chamado(raw)
    for k, v in chamado.items():
        print(f"  {k}: tipo={type(v).__name__!r}  valor={v!r}")
    print()
    problemas = check_chamado_invariants(chamado)
    print("Invariantes:", "ok" if not problemas else "; ".join(problemas))
    print("Ações para um gerente (nível 4):", acoes_disponiveis({'nivel_acesso': 4, 'email': ''}, chamado))

if __name__ == "__main__":
    main()
