"""Conferencia de saldos: apenas informativa, nunca altera o matching."""
from __future__ import annotations
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from logic.modelos import (
    ConferenciaSaldo,
    ConferenciaSaldos,
    LancamentoBanco,
    LancamentoOmie,
    Origem,
    para_decimal,
)
from infra.logger import get_logger


logger = get_logger()


def _conferir(
    fonte: Origem,
    saldo_anterior: Optional[Decimal],
    valores: Iterable[Decimal],
    saldo_informado: Optional[Decimal],
) -> Optional[ConferenciaSaldo]:
    if saldo_anterior is None:
        return None
    anterior = para_decimal(saldo_anterior)
    movimento = sum(valores, Decimal("0.00"))
    conf = ConferenciaSaldo(
        fonte=fonte,
        saldo_anterior=anterior,
        movimento=movimento,
        saldo_esperado=anterior + movimento,
        saldo_informado=para_decimal(saldo_informado) if saldo_informado is not None else None,
    )
    if conf.confere is False:
        logger.warning(
            "Saldo %s nao confere: esperado %s, informado %s (diferenca %s)",
            fonte, conf.saldo_esperado, conf.saldo_informado, conf.diferenca,
        )
    return conf


def _saldo_mais_recente(banco: Sequence[LancamentoBanco]) -> Optional[Decimal]:
    com_saldo = [(i, b) for i, b in enumerate(banco) if b.saldo is not None]
    if not com_saldo:
        return None
    # mesmo dia: vale a linha mais nova na ordem do arquivo
    decrescente = banco[0].data > banco[-1].data
    _, b = max(com_saldo, key=lambda p: (p[1].data, -p[0] if decrescente else p[0]))
    return b.saldo


def conferir_saldos(
    banco: Sequence[LancamentoBanco],
    omie: Sequence[LancamentoOmie],
    saldo_anterior_banco: Optional[Decimal] = None,
    saldo_anterior_omie: Optional[Decimal] = None,
    saldo_final_banco: Optional[Decimal] = None,
    saldo_final_omie: Optional[Decimal] = None,
) -> ConferenciaSaldos:
    """Saldo esperado = anterior + soma dos valores (conciliados ou nao).

    Sem saldo final informado para o banco, usa o saldo corrente do lancamento
    mais recente que o traga (extratos podem vir do mais novo para o mais antigo).
    """
    if saldo_final_banco is None:
        saldo_final_banco = _saldo_mais_recente(banco)

    return ConferenciaSaldos(
        banco=_conferir("banco", saldo_anterior_banco, (b.valor for b in banco), saldo_final_banco),
        omie=_conferir("omie", saldo_anterior_omie, (o.valor for o in omie), saldo_final_omie),
    )
