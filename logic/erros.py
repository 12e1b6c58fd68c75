from __future__ import annotations


class ErroConciliacao(Exception):
    """Base dos erros proprios da conciliacao."""


class DadosInsuficientes(ErroConciliacao, ValueError):
    """Falta o extrato do banco ou o do Omie; nao se concilia parcialmente."""

    def __init__(self, faltantes: list[str]):
        self.faltantes = faltantes
        super().__init__(f"Dados insuficientes para conciliar: falta {', '.join(faltantes)}")


class ErroLeitura(ErroConciliacao, ValueError):
    def __init__(self, fonte: str, mensagem: str):
        self.fonte = fonte
        super().__init__(f"[{fonte}] {mensagem}")


class ErroPersistencia(ErroConciliacao, RuntimeError):
    pass


class ExecucaoEmAndamento(ErroConciliacao, RuntimeError):
    pass


class ResultadoObsoleto(ErroPersistencia):
    """Os imports usados no calculo deixaram de ser os ativos do periodo."""

    def __init__(self, periodo_ref: str):
        self.periodo_ref = periodo_ref
        super().__init__(f"Imports de {periodo_ref} mudaram durante a conciliacao; resultado nao salvo")
