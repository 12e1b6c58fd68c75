from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Sequence
import re
import unicodedata

from logic.modelos import LancamentoBanco, LancamentoOmie, Match
from infra.config import ConciliacaoConfig
from infra.logger import get_logger


logger = get_logger()

_STOPWORDS_PADRAO = frozenset({
    "ltda", "eireli", "epp", "me", "sa", "de", "da", "do", "das", "dos",
    "pag", "pagamento", "pagto", "pix", "ted", "doc", "transf",
    "recebimento", "liquidacao",
})

Pool = Sequence[tuple[int, LancamentoBanco]]
PoolOmie = Sequence[tuple[int, LancamentoOmie]]


@dataclass(frozen=True)
class Parametros:
    tolerancia_dias: int = 3
    tolerancia_dias_descricao: int = 45
    tolerancia_dias_fraca: int = 10
    tolerancia_dias_cnpj: int = 5
    tolerancia_valor_pct: Decimal = Decimal("0.05")
    score_minimo_d: int = 4
    dias_carencia_atraso: int = 0
    auto_detectar_conta: bool = False
    stopwords: frozenset[str] = _STOPWORDS_PADRAO
    marcadores_fatura_cartao: tuple[str, ...] = ("deb.cta.fatura", "fatura cartao")

    @classmethod
    def from_config(cls, cfg: ConciliacaoConfig) -> "Parametros":
        return cls(
            tolerancia_dias=cfg.tolerancia_dias,
            tolerancia_dias_descricao=cfg.tolerancia_dias_descricao,
            tolerancia_dias_fraca=cfg.tolerancia_dias_fraca,
            tolerancia_dias_cnpj=cfg.tolerancia_dias_cnpj,
            tolerancia_valor_pct=Decimal(str(cfg.tolerancia_valor_pct)),
            score_minimo_d=cfg.score_minimo_d,
            dias_carencia_atraso=cfg.dias_carencia_atraso,
            auto_detectar_conta=cfg.auto_detectar_conta,
            stopwords=frozenset(map(str.lower, cfg.stopwords or _STOPWORDS_PADRAO)),
            marcadores_fatura_cartao=tuple(m.lower() for m in cfg.marcadores_fatura_cartao),
        )


# ==========================================================
# Texto
# ==========================================================
def _strip_accents(text: str) -> str:
    if not isinstance(text, str):
        return str(text)
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalizar_texto(s: str) -> str:
    """Minusculas, sem acentos, apenas alfanumericos separados por um espaco."""
    s = _strip_accents((s or "").lower())
    s = re.sub(r"[^0-9a-z]+", " ", s)
    return s.strip()


_CNPJ_RE = re.compile(r"(?<!\d)(\d{14})(?!\d)")
_CPF_RE = re.compile(r"(?<!\d)(\d{11})(?!\d)")


def normalizar_cnpj_cpf(valor: Optional[str]) -> str:
    return re.sub(r"\D", "", str(valor or ""))


def extrair_cnpj_cpf(desc: str) -> str:
    """CNPJ (14 digitos) ou CPF (11) citado na descricao, so os digitos; "" se nao houver."""
    texto = re.sub(r"(?<=\d)[./-](?=\d)", "", desc or "")
    m = _CNPJ_RE.search(texto) or _CPF_RE.search(texto)
    return m.group(1) if m else ""


def _tokens(s: str, stopwords: frozenset[str]) -> set[str]:
    return {t for t in s.split() if len(t) > 2 and t not in stopwords}


def tem_match_textual(desc1: str, desc2: str, stopwords: frozenset[str] = _STOPWORDS_PADRAO) -> bool:
    """True se uma descricao contem a outra ou se compartilham um token significativo.

    - Normaliza caixa, acentos e espacos
    - Ignora stopwords e tokens de ate 2 caracteres
    - Tokens de 4+ caracteres casam por prefixo ("FORN" ~ "FORNECEDOR")
    """
    n1, n2 = normalizar_texto(desc1), normalizar_texto(desc2)
    if not n1 or not n2:
        return False
    if min(len(n1), len(n2)) >= 4 and (n1 in n2 or n2 in n1):
        return True

    t1, t2 = _tokens(n1, stopwords), _tokens(n2, stopwords)
    if t1 & t2:
        return True
    for a in t1:
        for b in t2:
            if min(len(a), len(b)) >= 4 and (a.startswith(b) or b.startswith(a)):
                return True
    return False


# ==========================================================
# Criterios por camada
# ==========================================================
def _dias(b: LancamentoBanco, o: LancamentoOmie) -> int:
    return abs((b.data - o.data).days)


def _contas_compativeis(b: LancamentoBanco, o: LancamentoOmie) -> bool:
    if not b.conta or not o.conta:
        return True
    return b.conta.strip() == o.conta.strip()


def _mesmo_sinal(a: Decimal, b: Decimal) -> bool:
    return (a > 0) == (b > 0)


def _mesmo_cnpj(b: LancamentoBanco, o: LancamentoOmie) -> bool:
    cb, co = normalizar_cnpj_cpf(b.cnpj_cpf), normalizar_cnpj_cpf(o.cnpj_cpf)
    return bool(cb) and cb == co


def _valor_proximo(b: LancamentoBanco, o: LancamentoOmie, params: Parametros) -> bool:
    if b.valor == 0 or not _mesmo_sinal(b.valor, o.valor):
        return False
    return abs(b.valor - o.valor) / abs(b.valor) <= params.tolerancia_valor_pct


# Cada seletor recebe o lancamento do banco e os candidatos ainda livres
# (na ordem data, indice) e devolve (chave, posicao, criterio) ou None.
Seletor = Callable[[LancamentoBanco, list[tuple[int, int, LancamentoOmie]], Parametros],
                   Optional[tuple[tuple, int, str]]]


def _seletor_a(b, candidatos, params):
    """Mesmo CNPJ/CPF com ate 1 dia tem prioridade; senao, o primeiro com a mesma data."""
    melhor = None
    for pos, _, o in candidatos:
        if o.valor != b.valor or not _contas_compativeis(b, o):
            continue
        dias = _dias(b, o)
        if _mesmo_cnpj(b, o) and dias <= 1:
            chave, criterio = (0, dias, pos), "CNPJ+Valor+Data"
        elif dias == 0:
            chave = (1, 0, pos)
            criterio = "Valor+Data+Conta" if (b.conta and o.conta) else "Valor+Data"
        else:
            continue
        if melhor is None or chave < melhor[0]:
            melhor = (chave, pos, criterio)
    return melhor


def _seletor_b(b, candidatos, params):
    melhor = None
    for pos, _, o in candidatos:
        if not _contas_compativeis(b, o):
            continue
        dias = _dias(b, o)
        valor_igual = o.valor == b.valor
        if _mesmo_cnpj(b, o) and dias <= params.tolerancia_dias_cnpj:
            if valor_igual:
                chave, criterio = (0, dias, Decimal(0), pos), "CNPJ+Valor+DataProx"
            elif _valor_proximo(b, o, params):
                chave, criterio = (0, dias, abs(b.valor - o.valor), pos), "CNPJ+Data+ValorProx"
            else:
                continue
        elif valor_igual and dias <= params.tolerancia_dias:
            chave, criterio = (1, dias, Decimal(0), pos), "Valor+DataProx"
        else:
            continue
        if melhor is None or chave < melhor[0]:
            melhor = (chave, pos, criterio)
    return melhor


def _seletor_c(b, candidatos, params):
    melhor = None
    for pos, _, o in candidatos:
        if o.valor != b.valor:
            continue
        dias = _dias(b, o)
        if dias > params.tolerancia_dias_descricao:
            continue
        if not tem_match_textual(b.descricao, o.descricao, params.stopwords):
            continue
        chave = (dias, pos)
        if melhor is None or chave < melhor[0]:
            melhor = (chave, pos, "Valor+Descricao")
    return melhor


def _score_d(b: LancamentoBanco, o: LancamentoOmie, params: Parametros) -> Optional[tuple[int, str]]:
    if b.valor == 0 or not _mesmo_sinal(b.valor, o.valor):
        return None
    dias = _dias(b, o)
    if dias > params.tolerancia_dias_fraca:
        return None

    valor_igual = o.valor == b.valor
    if valor_igual:
        score = 3
    elif _valor_proximo(b, o, params):
        score = 1
    else:
        return None

    if dias <= 1:
        score += 2
    elif dias <= 3:
        score += 1

    texto = tem_match_textual(b.descricao, o.descricao, params.stopwords)
    if texto:
        score += 2
    if b.conta and o.conta and b.conta.strip() == o.conta.strip():
        score += 1
    if _mesmo_cnpj(b, o):
        score += 3

    if valor_igual and dias > 3:
        criterio = "Valor+Descricao(DataDiv)" if texto else "Valor+Conta(DataDiv)"
    elif not valor_igual and dias <= 3:
        criterio = "Data+Descricao(ValorDiv)" if texto else "Data+Conta(ValorDiv)"
    elif valor_igual:
        criterio = "Valor+Data(ContaDiv)"
    else:
        criterio = f"Score={score}"
    return score, criterio


def _seletor_d(b, candidatos, params):
    melhor = None
    for pos, _, o in candidatos:
        res = _score_d(b, o, params)
        if res is None:
            continue
        score, criterio = res
        if score < params.score_minimo_d:
            continue
        chave = (-score, _dias(b, o), pos)
        if melhor is None or chave < melhor[0]:
            melhor = (chave, pos, criterio)
    return melhor


CAMADAS: tuple[tuple[str, Seletor], ...] = (
    ("A", _seletor_a),
    ("B", _seletor_b),
    ("C", _seletor_c),
    ("D", _seletor_d),
)


def conciliar(
    banco: Pool,
    omie: PoolOmie,
    params: Parametros = Parametros(),
) -> tuple[list[Match], list[tuple[int, LancamentoBanco]], list[tuple[int, LancamentoOmie]]]:
    """Pareia banco x Omie em camadas A-D, um a um, de forma deterministica.

    Os dois pools sao percorridos em ordem crescente de (data, indice). Em cada
    camada, cada lancamento do banco ainda livre fica com o melhor candidato
    livre segundo o criterio da camada; o par sai dos dois pools.

    Retorna (matches, sobras_banco, sobras_omie); as sobras voltam na ordem
    original de entrada.
    """
    pool_b = sorted(banco, key=lambda p: (p[1].data, p[0]))
    pool_o = sorted(omie, key=lambda p: (p[1].data, p[0]))

    # Indice por valor para as camadas que exigem valor identico
    por_valor: dict[Decimal, list[int]] = defaultdict(list)
    for pos, (_, o) in enumerate(pool_o):
        por_valor[o.valor].append(pos)

    usados_b: set[int] = set()
    usados_o: set[int] = set()
    matches: list[Match] = []

    for camada, seletor in CAMADAS:
        antes = len(matches)
        for ib, b in pool_b:
            if ib in usados_b:
                continue
            # D e o CNPJ na camada B aceitam valores diferentes
            if camada == "D" or (camada == "B" and normalizar_cnpj_cpf(b.cnpj_cpf)):
                posicoes = range(len(pool_o))
            else:
                posicoes = por_valor.get(b.valor, [])
            candidatos = [(pos, pool_o[pos][0], pool_o[pos][1]) for pos in posicoes if pos not in usados_o]
            if not candidatos:
                continue
            escolhido = seletor(b, candidatos, params)
            if escolhido is None:
                continue
            _, pos, criterio = escolhido
            io, o = pool_o[pos]
            usados_b.add(ib)
            usados_o.add(pos)
            matches.append(Match(
                camada=camada,
                criterio=criterio,
                banco=b,
                omie=o,
                indice_banco=ib,
                indice_omie=io,
                dias_diferenca=_dias(b, o),
            ))
        logger.debug("Camada %s: %d pares", camada, len(matches) - antes)

    sobras_b = sorted(((ib, b) for ib, b in pool_b if ib not in usados_b), key=lambda p: p[0])
    sobras_o = sorted((pool_o[pos] for pos in range(len(pool_o)) if pos not in usados_o), key=lambda p: p[0])

    logger.info(
        "Conciliacao: %d pares, %d sobras no banco, %d sobras no Omie",
        len(matches), len(sobras_b), len(sobras_o),
    )
    return matches, sobras_b, sobras_o
