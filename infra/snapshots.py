"""Snapshots versionados de imports e resultados por periodo (YYYY-MM).

Cada (tipo, periodo_ref) de import e cada periodo_ref de resultado tem no
maximo uma linha `ativo`. A troca de versao (marcar a anterior como
`substituido` e inserir a nova) acontece numa unica transacao, e um indice
unico parcial `WHERE status = 'ativo'` rejeita qualquer segunda linha ativa
criada por gravacoes concorrentes.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from logic.erros import ErroPersistencia, ResultadoObsoleto
from logic.modelos import ResultadoConciliacao, para_decimal
from infra.db import get_engine, session_scope
from infra.logger import get_logger


logger = get_logger()

TIPOS_IMPORT = ("extrato_banco", "extrato_omie", "fatura_cartao")

STATUS_ATIVO = "ativo"
STATUS_SUBSTITUIDO = "substituido"

_PERIODO_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _agora() -> datetime:
    return datetime.now(timezone.utc)


def validar_periodo(periodo_ref: str) -> str:
    if not isinstance(periodo_ref, str) or not _PERIODO_RE.match(periodo_ref):
        raise ValueError(f"Periodo invalido: {periodo_ref!r} (esperado YYYY-MM)")
    return periodo_ref


def validar_tipo(tipo: str) -> str:
    if tipo not in TIPOS_IMPORT:
        raise ValueError(f"Tipo de import desconhecido: {tipo!r} (validos: {', '.join(TIPOS_IMPORT)})")
    return tipo


class Base(DeclarativeBase):
    pass


# ---------------------------
# conciliacao_imports
# ---------------------------


class ConciliacaoImport(Base):
    __tablename__ = "conciliacao_imports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tipo: Mapped[str] = mapped_column(String(20), nullable=False)
    periodo_ref: Mapped[str] = mapped_column(String(7), nullable=False)
    periodo_inicio: Mapped[date | None] = mapped_column(Date, nullable=True)
    periodo_fim: Mapped[date | None] = mapped_column(Date, nullable=True)
    nome_arquivo: Mapped[str] = mapped_column(Text, nullable=False)
    total_lancamentos: Mapped[int] = mapped_column(Integer, nullable=False)
    valor_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    saldo_anterior: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    # Lancamentos canonicos serializados; opaco para o armazenamento
    dados: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    metadados: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=STATUS_ATIVO)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_agora)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_agora)

    __table_args__ = (
        CheckConstraint("status IN ('ativo', 'substituido')", name="ck_conciliacao_imports_status"),
        CheckConstraint(
            "tipo IN ('extrato_banco', 'extrato_omie', 'fatura_cartao')",
            name="ck_conciliacao_imports_tipo",
        ),
        Index(
            "uq_conciliacao_imports_ativo",
            "tipo",
            "periodo_ref",
            unique=True,
            sqlite_where=text("status = 'ativo'"),
            postgresql_where=text("status = 'ativo'"),
        ),
    )


# ---------------------------
# conciliacao_resultados
# ---------------------------


class ConciliacaoResultado(Base):
    __tablename__ = "conciliacao_resultados"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    periodo_ref: Mapped[str] = mapped_column(String(7), nullable=False)
    total_conciliados: Mapped[int] = mapped_column(Integer, nullable=False)
    total_divergencias: Mapped[int] = mapped_column(Integer, nullable=False)
    contas_atraso: Mapped[int] = mapped_column(Integer, nullable=False)
    cartao_importaveis: Mapped[int] = mapped_column(Integer, nullable=False)
    camada_counts: Mapped[dict[str, int]] = mapped_column(JSON, nullable=False)
    # ids dos imports usados no calculo
    imports_ids: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    resultado: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=STATUS_ATIVO)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_agora)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_agora)

    __table_args__ = (
        CheckConstraint("status IN ('ativo', 'substituido')", name="ck_conciliacao_resultados_status"),
        Index(
            "uq_conciliacao_resultados_ativo",
            "periodo_ref",
            unique=True,
            sqlite_where=text("status = 'ativo'"),
            postgresql_where=text("status = 'ativo'"),
        ),
    )


class SnapshotStore:
    """Leitura e gravacao dos snapshots; toda falha vira `ErroPersistencia`."""

    def __init__(self, engine: Engine | None = None):
        self._engine = engine or get_engine()

    def criar_tabelas(self) -> None:
        Base.metadata.create_all(self._engine)

    @contextmanager
    def _transacao(self, operacao: str) -> Iterator[Session]:
        try:
            with session_scope(self._engine) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Falha de persistencia ao %s: %s", operacao, e)
            raise ErroPersistencia(f"Falha ao {operacao}: {e}") from e

    # ---- imports ----

    def salvar_import(
        self,
        tipo: str,
        periodo_ref: str,
        nome_arquivo: str,
        dados: list[Any],
        total_lancamentos: Optional[int] = None,
        valor_total: Optional[Decimal] = None,
        saldo_anterior: Optional[Decimal] = None,
        periodo_inicio: Optional[date] = None,
        periodo_fim: Optional[date] = None,
        metadados: Optional[dict[str, Any]] = None,
    ) -> ConciliacaoImport:
        """Grava o import como `ativo`, substituindo o anterior do mesmo tipo/periodo.

        O resultado ativo do periodo fica obsoleto e e substituido na mesma
        transacao.
        """
        validar_tipo(tipo)
        validar_periodo(periodo_ref)
        if valor_total is None:
            valor_total = sum((para_decimal(d.get("valor", 0)) for d in dados), Decimal("0.00"))

        with self._transacao("salvar import") as s:
            agora = _agora()
            s.execute(
                update(ConciliacaoImport)
                .where(
                    ConciliacaoImport.tipo == tipo,
                    ConciliacaoImport.periodo_ref == periodo_ref,
                    ConciliacaoImport.status == STATUS_ATIVO,
                )
                .values(status=STATUS_SUBSTITUIDO, updated_at=agora)
            )
            self._substituir_resultado(s, periodo_ref, agora)
            row = ConciliacaoImport(
                tipo=tipo,
                periodo_ref=periodo_ref,
                periodo_inicio=periodo_inicio,
                periodo_fim=periodo_fim,
                nome_arquivo=nome_arquivo,
                total_lancamentos=len(dados) if total_lancamentos is None else total_lancamentos,
                valor_total=para_decimal(valor_total),
                saldo_anterior=para_decimal(saldo_anterior) if saldo_anterior is not None else None,
                dados=dados,
                metadados=metadados,
                status=STATUS_ATIVO,
                created_at=agora,
                updated_at=agora,
            )
            s.add(row)
            s.flush()

        logger.info("Import %s %s salvo (%s, %d lancamentos)", tipo, periodo_ref, nome_arquivo, row.total_lancamentos)
        return row

    def carregar_imports(self, periodo_ref: str) -> dict[str, ConciliacaoImport | None]:
        """Import ativo de cada tipo do periodo (None quando nao ha)."""
        validar_periodo(periodo_ref)
        with self._transacao("carregar imports") as s:
            rows = s.scalars(
                select(ConciliacaoImport)
                .where(
                    ConciliacaoImport.periodo_ref == periodo_ref,
                    ConciliacaoImport.status == STATUS_ATIVO,
                )
                .order_by(ConciliacaoImport.tipo)
            ).all()
        por_tipo: dict[str, ConciliacaoImport | None] = {t: None for t in TIPOS_IMPORT}
        for row in rows:
            por_tipo[row.tipo] = row
        return por_tipo

    def excluir_import(self, tipo: str, periodo_ref: str) -> bool:
        """Exclusao logica: o ativo vira `substituido` e a linha fica para auditoria."""
        validar_tipo(tipo)
        validar_periodo(periodo_ref)
        with self._transacao("excluir import") as s:
            agora = _agora()
            res = s.execute(
                update(ConciliacaoImport)
                .where(
                    ConciliacaoImport.tipo == tipo,
                    ConciliacaoImport.periodo_ref == periodo_ref,
                    ConciliacaoImport.status == STATUS_ATIVO,
                )
                .values(status=STATUS_SUBSTITUIDO, updated_at=agora)
            )
            if res.rowcount:
                self._substituir_resultado(s, periodo_ref, agora)
        return bool(res.rowcount)

    def historico_imports(self, tipo: str, periodo_ref: str) -> list[ConciliacaoImport]:
        """Todas as versoes do tipo/periodo, da mais antiga para a mais nova."""
        with self._transacao("listar historico") as s:
            return list(s.scalars(
                select(ConciliacaoImport)
                .where(ConciliacaoImport.tipo == tipo, ConciliacaoImport.periodo_ref == periodo_ref)
                .order_by(ConciliacaoImport.id)
            ).all())

    # ---- resultados ----

    @staticmethod
    def _substituir_resultado(s: Session, periodo_ref: str, agora: datetime) -> int:
        res = s.execute(
            update(ConciliacaoResultado)
            .where(
                ConciliacaoResultado.periodo_ref == periodo_ref,
                ConciliacaoResultado.status == STATUS_ATIVO,
            )
            .values(status=STATUS_SUBSTITUIDO, updated_at=agora)
        )
        return res.rowcount

    def salvar_resultado(
        self,
        periodo_ref: str,
        resultado: ResultadoConciliacao,
        imports_ids: Optional[list[int]] = None,
    ) -> ConciliacaoResultado:
        """Grava o resultado como `ativo`, substituindo o anterior do periodo.

        Com `imports_ids`, o conjunto de imports ativos do periodo precisa ser
        exatamente esse no momento da gravacao; se mudou, levanta
        `ResultadoObsoleto` e nada e gravado.
        """
        validar_periodo(periodo_ref)
        payload = resultado.para_dict()
        with self._transacao("salvar resultado") as s:
            if imports_ids is not None:
                ativos = set(s.scalars(
                    select(ConciliacaoImport.id)
                    .where(
                        ConciliacaoImport.periodo_ref == periodo_ref,
                        ConciliacaoImport.status == STATUS_ATIVO,
                    )
                    .with_for_update()
                ).all())
                if ativos != set(imports_ids):
                    logger.warning(
                        "Resultado %s descartado: imports ativos %s, calculado com %s",
                        periodo_ref, sorted(ativos), sorted(imports_ids),
                    )
                    raise ResultadoObsoleto(periodo_ref)
            agora = _agora()
            self._substituir_resultado(s, periodo_ref, agora)
            row = ConciliacaoResultado(
                periodo_ref=periodo_ref,
                total_conciliados=resultado.total_conciliados,
                total_divergencias=resultado.total_divergencias,
                contas_atraso=resultado.contas_atraso,
                cartao_importaveis=resultado.cartao_importaveis,
                camada_counts=dict(resultado.camada_counts),
                imports_ids=sorted(imports_ids) if imports_ids is not None else None,
                resultado=payload,
                status=STATUS_ATIVO,
                created_at=agora,
                updated_at=agora,
            )
            s.add(row)
            s.flush()
        logger.info("Resultado %s salvo (%d conciliados)", periodo_ref, row.total_conciliados)
        return row

    def carregar_resultado(self, periodo_ref: str) -> ConciliacaoResultado | None:
        validar_periodo(periodo_ref)
        with self._transacao("carregar resultado") as s:
            return s.scalars(
                select(ConciliacaoResultado).where(
                    ConciliacaoResultado.periodo_ref == periodo_ref,
                    ConciliacaoResultado.status == STATUS_ATIVO,
                )
            ).one_or_none()

    def invalidar_resultado(self, periodo_ref: str) -> bool:
        """Marca o resultado ativo como substituido; sem ativo, nao faz nada."""
        validar_periodo(periodo_ref)
        with self._transacao("invalidar resultado") as s:
            n = self._substituir_resultado(s, periodo_ref, _agora())
        return bool(n)
