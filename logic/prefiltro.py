from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from logic.modelos import (
    ContaExcluida,
    LancamentoBanco,
    LancamentoOmie,
    LancamentosFuturos,
    LancamentosZerados,
)


SEM_CONTA = "(sem conta)"


@dataclass(frozen=True)
class ResultadoFiltro:
    """Pools prontos para o matching, com tudo que ficou de fora contabilizado.

    Os pools guardam `(indice, lancamento)`, onde `indice` e a posicao do
    lancamento na lista normalizada original.
    """
    banco: list[tuple[int, LancamentoBanco]]
    omie: list[tuple[int, LancamentoOmie]]
    zerados_banco: list[tuple[int, LancamentoBanco]] = field(default_factory=list)
    zerados_omie: list[tuple[int, LancamentoOmie]] = field(default_factory=list)
    futuros: list[tuple[int, LancamentoOmie]] = field(default_factory=list)
    excluidos_conta: list[tuple[int, LancamentoOmie]] = field(default_factory=list)
    conta_corrente_selecionada: Optional[str] = None
    contas_excluidas: list[ContaExcluida] = field(default_factory=list)
    ultima_data_banco: Optional[date] = None
    total_omie_original: int = 0

    @property
    def total_omie_filtrado(self) -> int:
        return len(self.omie)

    @property
    def lancamentos_zerados(self) -> LancamentosZerados:
        return LancamentosZerados(banco=len(self.zerados_banco), omie=len(self.zerados_omie))

    @property
    def lancamentos_futuros(self) -> LancamentosFuturos:
        return LancamentosFuturos(
            quantidade=len(self.futuros),
            total=sum((o.valor for _, o in self.futuros), Decimal("0.00")),
            ultima_data_banco=self.ultima_data_banco,
        )


def _nome_conta(conta: Optional[str]) -> str:
    return (conta or "").strip() or SEM_CONTA


def detectar_conta_corrente(
    banco: Sequence[LancamentoBanco],
    omie: Sequence[LancamentoOmie],
) -> Optional[str]:
    """Escolhe a conta do Omie cujos valores absolutos mais coincidem com o extrato.

    Retorna None quando ha no maximo uma conta (nada a filtrar). Empates ficam
    com a primeira conta encontrada.
    """
    contas: list[str] = []
    for o in omie:
        nome = (o.conta or "").strip()
        if nome and nome not in contas:
            contas.append(nome)
    if len(contas) <= 1:
        return None

    valores_banco = Counter(abs(b.valor) for b in banco)
    melhor, melhor_score = None, -1
    for conta in contas:
        score = sum(1 for o in omie if (o.conta or "").strip() == conta and abs(o.valor) in valores_banco)
        if score > melhor_score:
            melhor, melhor_score = conta, score
    return melhor


def prefiltrar(
    banco: Sequence[LancamentoBanco],
    omie: Sequence[LancamentoOmie],
    conta_selecionada: Optional[str] = None,
    auto_detectar_conta: bool = False,
) -> ResultadoFiltro:
    """Remove zerados, futuros e lancamentos de outras contas correntes.

    Cada lancamento termina em exatamente um balde: pool, zerado, futuro ou
    excluido por conta. A ordem de aplicacao e essa.
    """
    ultima = max((b.data for b in banco), default=None)

    pool_b: list[tuple[int, LancamentoBanco]] = []
    zerados_b: list[tuple[int, LancamentoBanco]] = []
    for idx, b in enumerate(banco):
        if b.valor == 0:
            zerados_b.append((idx, b))
        else:
            pool_b.append((idx, b))

    if conta_selecionada is None and auto_detectar_conta:
        conta_selecionada = detectar_conta_corrente([b for _, b in pool_b], omie)

    pool_o: list[tuple[int, LancamentoOmie]] = []
    zerados_o: list[tuple[int, LancamentoOmie]] = []
    futuros: list[tuple[int, LancamentoOmie]] = []
    fora_conta: list[tuple[int, LancamentoOmie]] = []
    excluidas: dict[str, int] = {}

    alvo = conta_selecionada.strip() if conta_selecionada else None
    for idx, o in enumerate(omie):
        if o.valor == 0:
            zerados_o.append((idx, o))
        elif ultima is not None and o.data > ultima:
            futuros.append((idx, o))
        elif alvo is not None and (o.conta or "").strip() != alvo:
            fora_conta.append((idx, o))
            nome = _nome_conta(o.conta)
            excluidas[nome] = excluidas.get(nome, 0) + 1
        else:
            pool_o.append((idx, o))

    return ResultadoFiltro(
        banco=pool_b,
        omie=pool_o,
        zerados_banco=zerados_b,
        zerados_omie=zerados_o,
        futuros=futuros,
        excluidos_conta=fora_conta,
        conta_corrente_selecionada=alvo,
        contas_excluidas=[ContaExcluida(nome, n) for nome, n in excluidas.items()],
        ultima_data_banco=ultima,
        total_omie_original=len(omie),
    )
