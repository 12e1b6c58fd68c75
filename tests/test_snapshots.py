from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from logic.erros import ErroPersistencia, ResultadoObsoleto
from logic.modelos import LancamentoBanco, LancamentoOmie, para_json
from logic.resultado import executar_conciliacao
from infra.db import criar_engine, session_scope
from infra.snapshots import (
    SnapshotStore,
    STATUS_ATIVO,
    STATUS_SUBSTITUIDO,
    ConciliacaoImport,
    validar_periodo,
)


def _dados(valor="100.00"):
    return [{"data": "2024-03-05", "valor": valor, "descricao": "x"}]


def _resultado():
    banco = [LancamentoBanco(date(2024, 3, 5), Decimal("100.00"), "x")]
    omie = [LancamentoOmie(date(2024, 3, 5), Decimal("100.00"), "x")]
    return executar_conciliacao(banco, omie)


def test_no_maximo_um_ativo_apos_varias_gravacoes(store):
    for i in range(5):
        store.salvar_import("extrato_banco", "2024-03", f"extrato_{i}.xlsx", _dados(f"{i}.00"))

    historico = store.historico_imports("extrato_banco", "2024-03")
    assert len(historico) == 5
    assert [r.status for r in historico] == [STATUS_SUBSTITUIDO] * 4 + [STATUS_ATIVO]

    atual = store.carregar_imports("2024-03")["extrato_banco"]
    assert atual.nome_arquivo == "extrato_4.xlsx"
    assert atual.valor_total == Decimal("4.00")


def test_tipos_e_periodos_independentes(store):
    store.salvar_import("extrato_banco", "2024-03", "b.xlsx", _dados())
    store.salvar_import("extrato_omie", "2024-03", "o.xlsx", _dados())
    store.salvar_import("extrato_banco", "2024-04", "b4.xlsx", _dados())

    marco = store.carregar_imports("2024-03")
    assert marco["extrato_banco"].nome_arquivo == "b.xlsx"
    assert marco["extrato_omie"].nome_arquivo == "o.xlsx"
    assert marco["fatura_cartao"] is None
    assert store.carregar_imports("2024-04")["extrato_banco"].nome_arquivo == "b4.xlsx"


def test_excluir_import_e_logico(store):
    store.salvar_import("fatura_cartao", "2024-03", "c.csv", _dados())
    assert store.excluir_import("fatura_cartao", "2024-03") is True
    assert store.carregar_imports("2024-03")["fatura_cartao"] is None
    assert len(store.historico_imports("fatura_cartao", "2024-03")) == 1
    assert store.excluir_import("fatura_cartao", "2024-03") is False


def test_resultado_substituido_e_invalidado(store):
    store.salvar_resultado("2024-03", _resultado())
    segundo = store.salvar_resultado("2024-03", _resultado())
    assert store.carregar_resultado("2024-03").id == segundo.id

    # novo import deixa o resultado do periodo obsoleto
    store.salvar_import("extrato_banco", "2024-03", "novo.xlsx", _dados())
    assert store.carregar_resultado("2024-03") is None


def test_invalidar_resultado_idempotente(store):
    store.salvar_resultado("2024-03", _resultado())
    assert store.invalidar_resultado("2024-03") is True
    assert store.invalidar_resultado("2024-03") is False
    assert store.carregar_resultado("2024-03") is None


def test_resultado_com_imports_substituidos_nao_e_gravado(store):
    antigo = store.salvar_import("extrato_banco", "2024-03", "a.xlsx", _dados())
    omie = store.salvar_import("extrato_omie", "2024-03", "o.xlsx", _dados())
    store.salvar_import("extrato_banco", "2024-03", "b.xlsx", _dados("200.00"))

    with pytest.raises(ResultadoObsoleto):
        store.salvar_resultado("2024-03", _resultado(), imports_ids=[antigo.id, omie.id])
    assert store.carregar_resultado("2024-03") is None


def test_resultado_com_imports_ativos_e_gravado(store):
    banco = store.salvar_import("extrato_banco", "2024-03", "a.xlsx", _dados())
    omie = store.salvar_import("extrato_omie", "2024-03", "o.xlsx", _dados())
    row = store.salvar_resultado("2024-03", _resultado(), imports_ids=[omie.id, banco.id])
    assert store.carregar_resultado("2024-03").id == row.id
    assert row.imports_ids == sorted([banco.id, omie.id])


def test_resultado_persistido_como_json(store):
    r = _resultado()
    row = store.salvar_resultado("2024-03", r)
    salvo = store.carregar_resultado("2024-03")
    assert salvo.id == row.id
    assert salvo.total_conciliados == 1
    assert salvo.camada_counts == {"A": 1, "B": 0, "C": 0, "D": 0}
    assert salvo.resultado == para_json(r)


def test_indice_unico_rejeita_segundo_ativo(store):
    store.salvar_import("extrato_banco", "2024-03", "a.xlsx", _dados())
    with pytest.raises(IntegrityError):
        with session_scope(store._engine) as s:
            s.add(ConciliacaoImport(
                tipo="extrato_banco",
                periodo_ref="2024-03",
                nome_arquivo="concorrente.xlsx",
                total_lancamentos=1,
                valor_total=Decimal("1.00"),
                dados=_dados(),
                status=STATUS_ATIVO,
            ))

    with session_scope(store._engine) as s:
        ativos = s.scalars(
            select(ConciliacaoImport).where(ConciliacaoImport.status == STATUS_ATIVO)
        ).all()
    assert len(ativos) == 1


def test_falha_de_banco_vira_erro_persistencia(tmp_path):
    # tabelas nunca criadas
    store = SnapshotStore(criar_engine(f"sqlite+pysqlite:///{tmp_path / 'vazio.db'}"))
    with pytest.raises(ErroPersistencia):
        store.carregar_imports("2024-03")


@pytest.mark.parametrize("periodo", ["2024-3", "2024-13", "03-2024", "", None])
def test_periodo_invalido(periodo):
    with pytest.raises(ValueError):
        validar_periodo(periodo)


def test_tipo_invalido(store):
    with pytest.raises(ValueError):
        store.salvar_import("extrato_xyz", "2024-03", "a.xlsx", _dados())
