from __future__ import annotations

import math
import re
import unicodedata
from decimal import Decimal
from numbers import Integral, Real
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import pandas as pd

from logic.conciliacao import extrair_cnpj_cpf, normalizar_cnpj_cpf
from logic.erros import ErroLeitura
from logic.modelos import LancamentoBanco, LancamentoOmie, TransacaoCartao, para_decimal
from infra.config import LeituraConfig, load_config


Linhas = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]


def _sanitize_header(value: str) -> str:
    lowered = str(value).lower().strip()
    replacements = {
        "cr?dito": "credito",
        "crã©dito": "credito",
        "d?bito": "debito",
        "dã©bito": "debito",
        "descri??o": "descricao",
        "situa??o": "situacao",
    }
    for wrong, corrected in replacements.items():
        if wrong in lowered:
            lowered = lowered.replace(wrong, corrected)
    normalized = unicodedata.normalize("NFKD", lowered)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def _como_dataframe(linhas: Linhas) -> pd.DataFrame:
    if isinstance(linhas, pd.DataFrame):
        return linhas
    return pd.DataFrame(list(linhas))


def detectar_colunas(df: pd.DataFrame, cfg: Optional[LeituraConfig] = None) -> dict[str, Optional[str]]:
    """Resolve aliases de coluna: devolve {campo: nome_original_ou_None}.

    A primeira palavra-chave com acerto ganha; uma coluna ja atribuida nao e
    reutilizada em outro campo ("Data Vencimento" nao vira a data do movimento
    se "Vencimento" for resolvido antes).
    """
    cfg = cfg or load_config().leitura
    cols = list(df.columns)
    sanitized = [_sanitize_header(c) for c in cols]
    usadas: set[str] = set()

    def pick(keywords: Iterable[str]) -> Optional[str]:
        for kw in keywords:
            kw_clean = _sanitize_header(kw)
            # coincidencia exata primeiro, depois por conteudo
            for original, clean in zip(cols, sanitized):
                if original not in usadas and clean == kw_clean:
                    usadas.add(original)
                    return original
            for original, clean in zip(cols, sanitized):
                if original not in usadas and kw_clean in clean:
                    usadas.add(original)
                    return original
        return None

    # ordem importa: os campos mais especificos reservam suas colunas antes
    vencimento = pick(cfg.alias_vencimento)
    saldo = pick(cfg.alias_saldo)
    situacao = pick(cfg.alias_situacao)
    categoria = pick(cfg.alias_categoria)
    cnpj_cpf = pick(cfg.alias_cnpj_cpf)
    origem = pick(cfg.alias_origem)
    conta = pick(cfg.alias_conta)
    documento = pick(cfg.alias_documento)
    data = pick(cfg.alias_data)
    debito = pick(cfg.alias_debito)
    credito = pick(cfg.alias_credito)
    valor = pick(cfg.alias_valor)
    descricao = pick(cfg.alias_descricao)
    return {
        "data": data,
        "valor": valor,
        "debito": debito,
        "credito": credito,
        "descricao": descricao,
        "conta": conta,
        "categoria": categoria,
        "vencimento": vencimento,
        "situacao": situacao,
        "saldo": saldo,
        "documento": documento,
        "cnpj_cpf": cnpj_cpf,
        "origem": origem,
    }


_MILHAR_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")
_NUMERO_RE = re.compile(r"^[\d.,]+$")


def _limpar_valor(valor: Any) -> Any:
    """Texto BRL -> texto numerico com ponto decimal; None quando vazio ou ilegivel.

    Aceita "R$ 1.234,56", "1.500" (milhar), "-150,00", "150,00-", "(150,00)"
    e os sufixos de extrato "D" (debito) e "C" (credito).
    """
    if valor is None or (isinstance(valor, float) and math.isnan(valor)):
        return None
    if isinstance(valor, (Real, Decimal)):
        return valor
    texto = str(valor).replace('"', "").upper().replace("R$", "")
    texto = "".join(texto.split())
    if not texto:
        return None

    negativo = False
    if texto.startswith("(") and texto.endswith(")"):
        negativo, texto = True, texto[1:-1]
    if texto.endswith("D"):
        negativo, texto = True, texto[:-1]
    elif texto.endswith("C"):
        texto = texto[:-1]
    if texto.endswith("-"):
        negativo, texto = True, texto[:-1]
    if texto.startswith("-"):
        negativo, texto = True, texto[1:]
    elif texto.startswith("+"):
        texto = texto[1:]

    if not _NUMERO_RE.match(texto):
        return None
    if "," in texto:
        texto = texto.replace(".", "").replace(",", ".")
    elif _MILHAR_RE.match(texto):
        texto = texto.replace(".", "")
    return ("-" if negativo else "") + texto


def limpar_valor_serie(serie: pd.Series) -> pd.Series:
    """Aceita numeros ou textos no formato brasileiro (ver `_limpar_valor`)."""
    if not isinstance(serie, pd.Series):
        serie = pd.Series(serie, dtype=object)
    if pd.api.types.is_numeric_dtype(serie):
        return pd.to_numeric(serie, errors="coerce")
    return pd.to_numeric(serie.map(_limpar_valor), errors="coerce")


def calcular_valor_final(
    df: pd.DataFrame,
    col_valor: Optional[str],
    col_debito: Optional[str],
    col_credito: Optional[str],
) -> pd.Series:
    if col_valor:
        return limpar_valor_serie(df[col_valor]).round(2)
    if col_debito and col_credito:
        if col_debito == col_credito:
            return limpar_valor_serie(df[col_debito]).round(2)
        deb = limpar_valor_serie(df[col_debito]).fillna(0).abs()
        cred = limpar_valor_serie(df[col_credito]).fillna(0).abs()
        return (cred - deb).round(2)
    raise ValueError("Informe a coluna de valor unico ou as colunas de debito e credito.")


def _normalizar_texto(valor: Any) -> str:
    """Sempre texto, sem sufixo `.0` quando vem de numeros."""
    if valor is None or (not isinstance(valor, str) and pd.isna(valor)):
        return ""
    if isinstance(valor, str):
        return valor.strip()
    if isinstance(valor, Integral):
        return str(int(valor))
    if isinstance(valor, Real):
        numero = float(valor)
        if math.isfinite(numero) and numero.is_integer():
            return str(int(numero))
        return str(valor)
    return str(valor)


def _texto_ou_none(valor: Any) -> Optional[str]:
    texto = _normalizar_texto(valor)
    return texto or None


# Datas seriais do Excel contam dias a partir de 1899-12-30
_EXCEL_ORIGEM = "1899-12-30"
_EXCEL_MAX = 2958466


def _datas(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    if not col:
        return pd.Series([pd.NaT] * len(df), index=df.index)
    serie = df[col]
    if pd.api.types.is_datetime64_any_dtype(serie):
        return serie.dt.floor("D")
    texto = serie.astype(str).str.strip()
    iso = texto.str.match(r"^\d{4}-\d{2}-\d{2}")
    out = pd.to_datetime(texto.where(iso), errors="coerce", format="%Y-%m-%d", exact=False)
    br = pd.to_datetime(texto.where(~iso), errors="coerce", format="%d/%m/%Y", exact=False)
    numeros = pd.to_numeric(texto.where(texto.str.fullmatch(r"\d+(\.0+)?")), errors="coerce")
    serial = pd.to_datetime(
        numeros.where((numeros >= 1) & (numeros < _EXCEL_MAX)),
        unit="D", origin=_EXCEL_ORIGEM, errors="coerce",
    )
    return out.fillna(br).fillna(serial).dt.floor("D")


def _celula_vazia(valor: Any) -> bool:
    if isinstance(valor, str):
        return not valor.strip()
    return valor is None or bool(pd.isna(valor))


def _conferir_valores(df: pd.DataFrame, cols: dict, datas: pd.Series, fonte: str) -> None:
    """Valor preenchido mas ilegivel numa linha com data levanta `ErroLeitura`."""
    for chave in ("valor", "debito", "credito"):
        col = cols[chave]
        if not col:
            continue
        lidos = limpar_valor_serie(df[col])
        for i in range(len(df)):
            bruto = df[col].iloc[i]
            if pd.isna(lidos.iloc[i]) and not pd.isna(datas.iloc[i]) and not _celula_vazia(bruto):
                raise ErroLeitura(fonte, f"valor ilegivel na linha {i + 1} ({col}): {bruto!r}")


def _preparar(linhas: Linhas, fonte: str, cfg: Optional[LeituraConfig]) -> tuple[pd.DataFrame, dict, pd.Series, pd.Series]:
    df = _como_dataframe(linhas).reset_index(drop=True)
    cols = detectar_colunas(df, cfg)
    if not cols["data"]:
        raise ErroLeitura(fonte, f"coluna de data nao encontrada em {list(df.columns)}")
    try:
        valores = calcular_valor_final(df, cols["valor"], cols["debito"], cols["credito"])
    except ValueError as e:
        raise ErroLeitura(fonte, str(e)) from e
    datas = _datas(df, cols["data"])
    _conferir_valores(df, cols, datas, fonte)
    return df, cols, datas, valores


def _cnpj_cpf(df: pd.DataFrame, cols: dict, i: int, descricao: str) -> str:
    if cols["cnpj_cpf"]:
        informado = normalizar_cnpj_cpf(_normalizar_texto(df[cols["cnpj_cpf"]].iloc[i]))
        if informado:
            return informado
    return extrair_cnpj_cpf(descricao)


def _linhas_validas(df: pd.DataFrame, datas: pd.Series, valores: pd.Series) -> Iterable[tuple[int, Any, Any]]:
    for i in range(len(df)):
        f, v = datas.iloc[i], valores.iloc[i]
        if pd.isna(f) or pd.isna(v):
            continue
        yield i, f.date(), para_decimal(float(v))


def normalizar_banco(linhas: Linhas, cfg: Optional[LeituraConfig] = None) -> list[LancamentoBanco]:
    """Linhas do extrato -> LancamentoBanco. Valores zerados sao mantidos (o pre-filtro os conta)."""
    df, cols, datas, valores = _preparar(linhas, "extrato_banco", cfg)
    saldos = limpar_valor_serie(df[cols["saldo"]]) if cols["saldo"] else None
    out: list[LancamentoBanco] = []
    for i, f, v in _linhas_validas(df, datas, valores):
        saldo = None
        if saldos is not None and not pd.isna(saldos.iloc[i]):
            saldo = para_decimal(float(saldos.iloc[i]))
        desc = _normalizar_texto(df[cols["descricao"]].iloc[i]) if cols["descricao"] else ""
        out.append(LancamentoBanco(
            data=f,
            valor=v,
            descricao=desc,
            conta=_texto_ou_none(df[cols["conta"]].iloc[i]) if cols["conta"] else None,
            saldo=saldo,
            documento=_normalizar_texto(df[cols["documento"]].iloc[i]) if cols["documento"] else "",
            cnpj_cpf=_cnpj_cpf(df, cols, i, desc),
        ))
    return out


def normalizar_omie(linhas: Linhas, cfg: Optional[LeituraConfig] = None) -> list[LancamentoOmie]:
    df, cols, datas, valores = _preparar(linhas, "extrato_omie", cfg)
    vencimentos = _datas(df, cols["vencimento"])

    def campo(nome: str, i: int) -> str:
        return _normalizar_texto(df[cols[nome]].iloc[i]) if cols[nome] else ""

    out: list[LancamentoOmie] = []
    for i, f, v in _linhas_validas(df, datas, valores):
        venc = vencimentos.iloc[i]
        desc = campo("descricao", i)
        out.append(LancamentoOmie(
            data=f,
            valor=v,
            descricao=desc,
            conta=campo("conta", i) or None,
            categoria=campo("categoria", i) or None,
            vencimento=None if pd.isna(venc) else venc.date(),
            situacao=campo("situacao", i),
            documento=campo("documento", i),
            cliente_fornecedor=desc,
            cnpj_cpf=_cnpj_cpf(df, cols, i, desc),
            origem=campo("origem", i),
        ))
    return out


def normalizar_cartao(
    linhas: Linhas,
    cartao: str = "",
    cfg: Optional[LeituraConfig] = None,
) -> list[TransacaoCartao]:
    """Transacoes da fatura. Pagamentos da propria fatura e estornos (valor <= 0) nao sao importaveis."""
    df, cols, datas, valores = _preparar(linhas, "fatura_cartao", cfg)
    out: list[TransacaoCartao] = []
    for i, f, v in _linhas_validas(df, datas, valores):
        desc = _normalizar_texto(df[cols["descricao"]].iloc[i]) if cols["descricao"] else ""
        out.append(TransacaoCartao(
            data=f,
            valor=v,
            descricao=desc,
            cartao=cartao or (_normalizar_texto(df[cols["conta"]].iloc[i]) if cols["conta"] else ""),
            importavel=v > 0 and "pagamento" not in _sanitize_header(desc),
        ))
    return out
