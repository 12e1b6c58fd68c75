from __future__ import annotations
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Union

from logic.conciliacao import Parametros
from logic.erros import ErroPersistencia, ExecucaoEmAndamento
from logic.modelos import (
    LancamentoBanco,
    LancamentoOmie,
    ResultadoConciliacao,
    TransacaoCartao,
    para_json,
)
from logic.resultado import executar_conciliacao
from infra.config import load_config
from infra.logger import get_logger
from infra.snapshots import ConciliacaoImport, SnapshotStore


logger = get_logger()

Lancamento = Union[LancamentoBanco, LancamentoOmie, TransacaoCartao]

_CLASSES = {
    "extrato_banco": LancamentoBanco,
    "extrato_omie": LancamentoOmie,
    "fatura_cartao": TransacaoCartao,
}


@dataclass(frozen=True)
class Execucao:
    """Resultado de uma rodada. `salvo=False` quando so a persistencia falhou."""
    resultado: ResultadoConciliacao
    salvo: bool
    snapshot_id: Optional[int] = None
    erro_persistencia: Optional[ErroPersistencia] = None


def reidratar(row: Optional[ConciliacaoImport]) -> list:
    if row is None:
        return []
    cls = _CLASSES[row.tipo]
    return [cls.de_dict(d) for d in row.dados]


class ServicoConciliacao:
    """Importacao -> motor -> persistencia, com uma rodada por vez."""

    def __init__(self, store: SnapshotStore, params: Optional[Parametros] = None):
        self.store = store
        self.params = params or Parametros.from_config(load_config().conciliacao)
        self._lock = threading.Lock()

    @property
    def em_execucao(self) -> bool:
        return self._lock.locked()

    def importar(
        self,
        tipo: str,
        periodo_ref: str,
        nome_arquivo: str,
        lancamentos: Sequence[Lancamento],
        saldo_anterior: Optional[Decimal] = None,
        metadados: Optional[dict] = None,
    ) -> ConciliacaoImport:
        datas = [l.data for l in lancamentos]
        return self.store.salvar_import(
            tipo,
            periodo_ref,
            nome_arquivo,
            [para_json(l) for l in lancamentos],
            total_lancamentos=len(lancamentos),
            valor_total=sum((l.valor for l in lancamentos), Decimal("0.00")),
            saldo_anterior=saldo_anterior,
            periodo_inicio=min(datas, default=None),
            periodo_fim=max(datas, default=None),
            metadados=metadados,
        )

    def executar(
        self,
        periodo_ref: str,
        conta_selecionada: Optional[str] = None,
        saldo_final_banco: Optional[Decimal] = None,
        saldo_final_omie: Optional[Decimal] = None,
    ) -> Execucao:
        """Concilia os imports ativos do periodo e grava o resultado.

        Levanta `DadosInsuficientes` sem extrato do banco ou do Omie. Uma falha
        ao gravar nao descarta o resultado: volta em `Execucao` com `salvo=False`.
        Isso inclui um import novo do periodo gravado durante o calculo.
        """
        if not self._lock.acquire(blocking=False):
            raise ExecucaoEmAndamento("Ja existe uma conciliacao em andamento")
        try:
            imports = self.store.carregar_imports(periodo_ref)
            imp_banco = imports["extrato_banco"]
            imp_omie = imports["extrato_omie"]

            resultado = executar_conciliacao(
                reidratar(imp_banco),
                reidratar(imp_omie),
                reidratar(imports["fatura_cartao"]),
                params=self.params,
                conta_selecionada=conta_selecionada,
                saldo_anterior_banco=imp_banco.saldo_anterior if imp_banco else None,
                saldo_anterior_omie=imp_omie.saldo_anterior if imp_omie else None,
                saldo_final_banco=saldo_final_banco,
                saldo_final_omie=saldo_final_omie,
            )

            try:
                row = self.store.salvar_resultado(
                    periodo_ref,
                    resultado,
                    imports_ids=[r.id for r in imports.values() if r is not None],
                )
            except ErroPersistencia as e:
                logger.error("Resultado de %s calculado mas nao salvo: %s", periodo_ref, e)
                return Execucao(resultado=resultado, salvo=False, erro_persistencia=e)
            return Execucao(resultado=resultado, salvo=True, snapshot_id=row.id)
        finally:
            self._lock.release()
