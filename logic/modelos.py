from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional


Origem = Literal["banco", "omie"]
Natureza = Literal["receber", "pagar"]

CAMADAS = ("A", "B", "C", "D")

CENTAVOS = Decimal("0.01")


def para_decimal(valor: Any) -> Decimal:
    """Converte numeros/strings em Decimal com duas casas."""
    if isinstance(valor, Decimal):
        return valor.quantize(CENTAVOS)
    if isinstance(valor, float):
        return Decimal(f"{valor:.2f}")
    return Decimal(str(valor)).quantize(CENTAVOS)


def _data_ou_none(valor: Any) -> Optional[date]:
    if valor is None or valor == "":
        return None
    if isinstance(valor, date):
        return valor
    return date.fromisoformat(str(valor)[:10])


@dataclass(frozen=True)
class LancamentoBanco:
    data: date               # data do movimento no extrato
    valor: Decimal           # com sinal: credito > 0, debito < 0
    descricao: str
    conta: Optional[str] = None
    saldo: Optional[Decimal] = None  # saldo corrente informado pelo banco
    documento: str = ""
    cnpj_cpf: str = ""       # apenas digitos

    @classmethod
    def de_dict(cls, d: dict) -> "LancamentoBanco":
        return cls(
            data=_data_ou_none(d["data"]),
            valor=para_decimal(d["valor"]),
            descricao=d.get("descricao") or "",
            conta=d.get("conta"),
            saldo=para_decimal(d["saldo"]) if d.get("saldo") is not None else None,
            documento=d.get("documento") or "",
            cnpj_cpf=d.get("cnpj_cpf") or "",
        )


@dataclass(frozen=True)
class LancamentoOmie:
    data: date
    valor: Decimal
    descricao: str
    conta: Optional[str] = None
    categoria: Optional[str] = None
    vencimento: Optional[date] = None
    natureza: Optional[Natureza] = None
    situacao: str = ""
    documento: str = ""
    cliente_fornecedor: str = ""
    cnpj_cpf: str = ""
    origem: str = ""         # coluna Origem do Omie ("Conta a Receber", ...)

    @classmethod
    def de_dict(cls, d: dict) -> "LancamentoOmie":
        return cls(
            data=_data_ou_none(d["data"]),
            valor=para_decimal(d["valor"]),
            descricao=d.get("descricao") or "",
            conta=d.get("conta"),
            categoria=d.get("categoria"),
            vencimento=_data_ou_none(d.get("vencimento")),
            natureza=d.get("natureza"),
            situacao=d.get("situacao") or "",
            documento=d.get("documento") or "",
            cliente_fornecedor=d.get("cliente_fornecedor") or "",
            cnpj_cpf=d.get("cnpj_cpf") or "",
            origem=d.get("origem") or "",
        )


@dataclass(frozen=True)
class TransacaoCartao:
    data: date
    valor: Decimal
    descricao: str
    cartao: str = ""
    importavel: bool = True
    parcela: str = ""

    @classmethod
    def de_dict(cls, d: dict) -> "TransacaoCartao":
        return cls(
            data=_data_ou_none(d["data"]),
            valor=para_decimal(d["valor"]),
            descricao=d.get("descricao") or "",
            cartao=d.get("cartao") or "",
            importavel=bool(d.get("importavel", True)),
            parcela=d.get("parcela") or "",
        )


@dataclass(frozen=True)
class Match:
    camada: str               # "A" a "D"
    criterio: str             # regra que produziu o par
    banco: LancamentoBanco
    omie: LancamentoOmie
    indice_banco: int
    indice_omie: int
    dias_diferenca: int = 0


@dataclass(frozen=True)
class Divergencia:
    tipo: str                 # "A", "T", "B", "B*", "G", "E"
    descricao_tipo: str
    origem: Origem
    lancamento: LancamentoBanco | LancamentoOmie
    indice: int
    dias_atraso: Optional[int] = None
    acao_sugerida: str = ""

    @property
    def valor(self) -> Decimal:
        return self.lancamento.valor


@dataclass(frozen=True)
class ContaExcluida:
    nome: str
    quantidade: int


@dataclass(frozen=True)
class LancamentosZerados:
    banco: int = 0
    omie: int = 0

    @property
    def total(self) -> int:
        return self.banco + self.omie


@dataclass(frozen=True)
class LancamentosFuturos:
    quantidade: int = 0
    total: Decimal = Decimal("0.00")
    ultima_data_banco: Optional[date] = None


@dataclass(frozen=True)
class ConferenciaSaldo:
    fonte: Origem
    saldo_anterior: Decimal
    movimento: Decimal
    saldo_esperado: Decimal
    saldo_informado: Optional[Decimal] = None

    @property
    def diferenca(self) -> Optional[Decimal]:
        if self.saldo_informado is None:
            return None
        return self.saldo_informado - self.saldo_esperado

    @property
    def confere(self) -> Optional[bool]:
        if self.saldo_informado is None:
            return None
        return self.diferenca == 0


@dataclass(frozen=True)
class ConferenciaSaldos:
    banco: Optional[ConferenciaSaldo] = None
    omie: Optional[ConferenciaSaldo] = None


@dataclass(frozen=True)
class ResultadoConciliacao:
    matches: list[Match]
    divergencias: list[Divergencia]
    camada_counts: dict[str, int]
    div_counts: dict[str, int]
    total_conciliados: int
    total_divergencias: int
    contas_atraso: int
    cartao_importaveis: int
    conta_corrente_selecionada: Optional[str]
    contas_excluidas: list[ContaExcluida]
    total_omie_original: int
    total_omie_filtrado: int
    lancamentos_zerados: LancamentosZerados
    lancamentos_futuros: LancamentosFuturos
    conferencia_saldos: ConferenciaSaldos
    periodo_ref: Optional[str]
    banco: list[LancamentoBanco] = field(default_factory=list)
    omie: list[LancamentoOmie] = field(default_factory=list)
    cartao: list[TransacaoCartao] = field(default_factory=list)

    def divergencias_por_tipo(self) -> dict[str, list[Divergencia]]:
        grupos: dict[str, list[Divergencia]] = {}
        for d in self.divergencias:
            grupos.setdefault(d.tipo, []).append(d)
        return grupos

    def para_dict(self) -> dict:
        """Payload JSON-safe usado pelos snapshots e exportadores."""
        return para_json(self)


def para_json(obj: Any) -> Any:
    """Serializa dataclasses, datas e Decimals recursivamente."""
    if is_dataclass(obj) and not isinstance(obj, type):
        out = {f.name: para_json(getattr(obj, f.name)) for f in fields(obj)}
        # propriedades derivadas que os consumidores leem
        for extra in ("total", "diferenca", "confere"):
            attr = getattr(type(obj), extra, None)
            if isinstance(attr, property):
                out[extra] = para_json(getattr(obj, extra))
        return out
    if isinstance(obj, dict):
        return {str(k): para_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [para_json(v) for v in obj]
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    return obj
