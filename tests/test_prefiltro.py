from datetime import date
from decimal import Decimal

from logic.modelos import ContaExcluida, LancamentoBanco, LancamentoOmie
from logic.prefiltro import SEM_CONTA, detectar_conta_corrente, prefiltrar


def test_zerados_e_futuros():
    banco = [
        LancamentoBanco(date(2024, 3, 5), Decimal("1500.00"), "PAG FORN X"),
        LancamentoBanco(date(2024, 3, 10), Decimal("0.00"), "TAXA"),
    ]
    omie = [
        LancamentoOmie(date(2024, 3, 5), Decimal("1500.00"), "Fornecedor X"),
        LancamentoOmie(date(2024, 4, 1), Decimal("300.00"), "Cliente Y"),
        LancamentoOmie(date(2024, 3, 6), Decimal("0.00"), "Estorno"),
    ]
    r = prefiltrar(banco, omie)

    # o lancamento zerado ainda define a ultima data do extrato
    assert r.ultima_data_banco == date(2024, 3, 10)
    assert [i for i, _ in r.banco] == [0]
    assert [i for i, _ in r.omie] == [0]
    assert r.lancamentos_zerados.banco == 1
    assert r.lancamentos_zerados.omie == 1
    assert r.lancamentos_zerados.total == 2
    assert r.lancamentos_futuros.quantidade == 1
    assert r.lancamentos_futuros.total == Decimal("300.00")
    assert r.total_omie_original == 3
    assert r.total_omie_filtrado == 1


def test_filtro_por_conta_corrente():
    banco = [LancamentoBanco(date(2024, 3, 31), Decimal("10.00"), "x")]
    omie = [
        LancamentoOmie(date(2024, 3, 1), Decimal("10.00"), "a", conta="Itau"),
        LancamentoOmie(date(2024, 3, 2), Decimal("20.00"), "b", conta="Bradesco"),
        LancamentoOmie(date(2024, 3, 3), Decimal("30.00"), "c", conta="Bradesco"),
        LancamentoOmie(date(2024, 3, 4), Decimal("40.00"), "d"),
    ]
    r = prefiltrar(banco, omie, conta_selecionada="Itau")
    assert r.conta_corrente_selecionada == "Itau"
    assert [i for i, _ in r.omie] == [0]
    assert r.contas_excluidas == [ContaExcluida("Bradesco", 2), ContaExcluida(SEM_CONTA, 1)]


def test_particao_sem_perdas():
    banco = [
        LancamentoBanco(date(2024, 3, 1), Decimal("0"), "z"),
        LancamentoBanco(date(2024, 3, 20), Decimal("5"), "a"),
    ]
    omie = [
        LancamentoOmie(date(2024, 3, 1), Decimal("0"), "z"),
        LancamentoOmie(date(2024, 3, 25), Decimal("7"), "futuro", conta="Outra"),
        LancamentoOmie(date(2024, 3, 2), Decimal("7"), "outra conta", conta="Outra"),
        LancamentoOmie(date(2024, 3, 2), Decimal("5"), "ok", conta="Principal"),
    ]
    r = prefiltrar(banco, omie, conta_selecionada="Principal")
    baldes_o = [r.omie, r.zerados_omie, r.futuros, r.excluidos_conta]
    todos = sorted(i for balde in baldes_o for i, _ in balde)
    assert todos == [0, 1, 2, 3]
    # futuro tem precedencia sobre conta
    assert [i for i, _ in r.futuros] == [1]
    assert [i for i, _ in r.excluidos_conta] == [2]
    assert sorted(i for b in (r.banco, r.zerados_banco) for i, _ in b) == [0, 1]


def test_sem_conta_selecionada_nao_filtra():
    banco = [LancamentoBanco(date(2024, 3, 31), Decimal("10.00"), "x")]
    omie = [
        LancamentoOmie(date(2024, 3, 1), Decimal("10.00"), "a", conta="Itau"),
        LancamentoOmie(date(2024, 3, 2), Decimal("20.00"), "b", conta="Bradesco"),
    ]
    r = prefiltrar(banco, omie)
    assert r.conta_corrente_selecionada is None
    assert len(r.omie) == 2
    assert r.contas_excluidas == []


def test_detectar_conta_corrente():
    banco = [
        LancamentoBanco(date(2024, 3, 1), Decimal("-100.00"), "a"),
        LancamentoBanco(date(2024, 3, 2), Decimal("200.00"), "b"),
    ]
    omie = [
        LancamentoOmie(date(2024, 3, 1), Decimal("-999.00"), "a", conta="Caixa"),
        LancamentoOmie(date(2024, 3, 1), Decimal("-100.00"), "a", conta="Itau"),
        LancamentoOmie(date(2024, 3, 2), Decimal("200.00"), "b", conta="Itau"),
    ]
    assert detectar_conta_corrente(banco, omie) == "Itau"
    assert detectar_conta_corrente(banco, omie[1:]) is None

    r = prefiltrar(banco, omie, auto_detectar_conta=True)
    assert r.conta_corrente_selecionada == "Itau"
    assert r.contas_excluidas == [ContaExcluida("Caixa", 1)]
