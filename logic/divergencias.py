from __future__ import annotations
from datetime import date, timedelta
from typing import Optional, Sequence

from logic.conciliacao import Parametros, normalizar_cnpj_cpf, normalizar_texto
from logic.modelos import Divergencia, LancamentoBanco, LancamentoOmie, Match


TIPOS = {
    "A": "FALTANDO NO OMIE",
    "T": "TRANSFERENCIA ENTRE CONTAS",
    "B": "A MAIS NO OMIE",
    "B*": "CONTA A RECEBER EM ATRASO",
    "G": "CONTA A PAGAR EM ATRASO",
    "E": "DUPLICIDADE",
}

TIPOS_ATRASO = ("B*", "G")


def _natureza_do_texto(texto: Optional[str]) -> Optional[str]:
    t = normalizar_texto(texto or "")
    if "receb" in t or "receivable" in t:
        return "receber"
    if "pagar" in t or "payable" in t:
        return "pagar"
    return None


def natureza_de(o: LancamentoOmie) -> Optional[str]:
    """Natureza explicita, ou deduzida da categoria e depois da origem ("Conta a Receber"...)."""
    if o.natureza in ("receber", "pagar"):
        return o.natureza
    return _natureza_do_texto(o.categoria) or _natureza_do_texto(o.origem)


def _chave_duplicidade(o: LancamentoOmie) -> Optional[tuple]:
    ref = (
        normalizar_cnpj_cpf(o.cnpj_cpf)
        or normalizar_texto(o.documento)
        or normalizar_texto(o.cliente_fornecedor)
    )
    if not ref:
        return None
    return (o.valor, o.data, ref)


def _eh_fatura_cartao(b: LancamentoBanco, params: Parametros) -> bool:
    desc = normalizar_texto(b.descricao)
    return any(normalizar_texto(m) in desc for m in params.marcadores_fatura_cartao if m)


def _divergencia_omie(
    idx: int,
    o: LancamentoOmie,
    ultima_data_banco: Optional[date],
    params: Parametros,
) -> Divergencia:
    natureza = natureza_de(o)
    vencimento = o.vencimento or o.data

    marcado_atrasado = normalizar_texto(o.situacao) == "atrasado"
    if natureza is None and marcado_atrasado:
        # titulo vencido no Omie sem categoria/origem: o sinal indica a direcao
        natureza = "receber" if o.valor > 0 else "pagar"

    atrasado = marcado_atrasado
    if ultima_data_banco is not None:
        limite = ultima_data_banco - timedelta(days=params.dias_carencia_atraso)
        atrasado = atrasado or vencimento < limite

    if natureza is not None and atrasado:
        dias = max(0, (ultima_data_banco - vencimento).days) if ultima_data_banco else None
        if natureza == "receber":
            tipo, acao = "B*", "Conta a receber em atraso: cobrar cliente"
        else:
            tipo, acao = "G", "Conta a pagar em atraso: verificar pagamento"
        return Divergencia(tipo, TIPOS[tipo], "omie", o, idx, dias_atraso=dias, acao_sugerida=acao)

    return Divergencia("B", TIPOS["B"], "omie", o, idx, acao_sugerida="Investigar")


def classificar_divergencias(
    sobras_banco: Sequence[tuple[int, LancamentoBanco]],
    sobras_omie: Sequence[tuple[int, LancamentoOmie]],
    matches: Sequence[Match],
    ultima_data_banco: Optional[date],
    params: Parametros = Parametros(),
) -> list[Divergencia]:
    """Tipifica cada sobra do matching; cada sobra gera exatamente uma divergencia.

    Ordena por valor absoluto decrescente (depois origem e indice), como o
    relatorio apresenta.
    """
    out: list[Divergencia] = []

    for idx, b in sobras_banco:
        if _eh_fatura_cartao(b, params):
            out.append(Divergencia(
                "T", TIPOS["T"], "banco", b, idx,
                acao_sugerida="Lancar transferencia para o cartao de credito no Omie",
            ))
        else:
            out.append(Divergencia("A", TIPOS["A"], "banco", b, idx, acao_sugerida="Lancar no Omie / revisar"))

    conciliados = {k for k in (_chave_duplicidade(m.omie) for m in matches) if k is not None}
    for idx, o in sobras_omie:
        chave = _chave_duplicidade(o)
        if chave is not None and chave in conciliados:
            out.append(Divergencia(
                "E", TIPOS["E"], "omie", o, idx,
                acao_sugerida="Lancamento repetido no Omie: excluir a copia",
            ))
            continue
        out.append(_divergencia_omie(idx, o, ultima_data_banco, params))

    out.sort(key=lambda d: (-abs(d.valor), 0 if d.origem == "banco" else 1, d.indice))
    return out


def contar_atrasos(divergencias: Sequence[Divergencia]) -> int:
    return sum(1 for d in divergencias if d.tipo in TIPOS_ATRASO)
