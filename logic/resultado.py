from __future__ import annotations
from collections import Counter
from decimal import Decimal
from typing import Optional, Sequence

from logic.conciliacao import Parametros, conciliar
from logic.divergencias import classificar_divergencias, contar_atrasos
from logic.erros import DadosInsuficientes
from logic.modelos import (
    CAMADAS,
    LancamentoBanco,
    LancamentoOmie,
    ResultadoConciliacao,
    TransacaoCartao,
)
from logic.prefiltro import prefiltrar
from logic.saldos import conferir_saldos
from infra.logger import get_logger


logger = get_logger()


def detectar_periodo(banco: Sequence[LancamentoBanco]) -> Optional[str]:
    """Mes (YYYY-MM) mais frequente no extrato; empate fica com o mais antigo."""
    if not banco:
        return None
    contagem = Counter(b.data.strftime("%Y-%m") for b in banco)
    return min(contagem, key=lambda k: (-contagem[k], k))


def executar_conciliacao(
    banco: Optional[Sequence[LancamentoBanco]],
    omie: Optional[Sequence[LancamentoOmie]],
    cartao: Optional[Sequence[TransacaoCartao]] = None,
    params: Parametros = Parametros(),
    conta_selecionada: Optional[str] = None,
    saldo_anterior_banco: Optional[Decimal] = None,
    saldo_anterior_omie: Optional[Decimal] = None,
    saldo_final_banco: Optional[Decimal] = None,
    saldo_final_omie: Optional[Decimal] = None,
) -> ResultadoConciliacao:
    """Roda pre-filtro, matching, classificacao e conferencia de saldos.

    Funcao pura sobre as entradas. Sem extrato do banco ou do Omie levanta
    `DadosInsuficientes` e nada e produzido.
    """
    faltantes = []
    if not banco:
        faltantes.append("extrato do banco")
    if not omie:
        faltantes.append("extrato do Omie")
    if faltantes:
        raise DadosInsuficientes(faltantes)

    banco = list(banco)
    omie = list(omie)
    cartao = list(cartao or [])

    filtro = prefiltrar(banco, omie, conta_selecionada, params.auto_detectar_conta)
    matches, sobras_b, sobras_o = conciliar(filtro.banco, filtro.omie, params)
    divergencias = classificar_divergencias(sobras_b, sobras_o, matches, filtro.ultima_data_banco, params)

    conferencia = conferir_saldos(
        [b for _, b in filtro.banco],
        [o for _, o in filtro.omie],
        saldo_anterior_banco=saldo_anterior_banco,
        saldo_anterior_omie=saldo_anterior_omie,
        saldo_final_banco=saldo_final_banco,
        saldo_final_omie=saldo_final_omie,
    )

    camada_counts = {c: 0 for c in CAMADAS}
    for m in matches:
        camada_counts[m.camada] += 1

    div_counts: dict[str, int] = {}
    for d in divergencias:
        div_counts[d.tipo] = div_counts.get(d.tipo, 0) + 1

    resultado = ResultadoConciliacao(
        matches=matches,
        divergencias=divergencias,
        camada_counts=camada_counts,
        div_counts=div_counts,
        total_conciliados=len(matches),
        total_divergencias=len(divergencias),
        contas_atraso=contar_atrasos(divergencias),
        cartao_importaveis=sum(1 for t in cartao if t.importavel),
        conta_corrente_selecionada=filtro.conta_corrente_selecionada,
        contas_excluidas=filtro.contas_excluidas,
        total_omie_original=filtro.total_omie_original,
        total_omie_filtrado=filtro.total_omie_filtrado,
        lancamentos_zerados=filtro.lancamentos_zerados,
        lancamentos_futuros=filtro.lancamentos_futuros,
        conferencia_saldos=conferencia,
        periodo_ref=detectar_periodo(banco),
        banco=banco,
        omie=omie,
        cartao=cartao,
    )
    logger.info(
        "Resultado %s: %d conciliados %s, %d divergencias, %d em atraso",
        resultado.periodo_ref, resultado.total_conciliados, camada_counts,
        resultado.total_divergencias, resultado.contas_atraso,
    )
    return resultado
