from __future__ import annotations
import os
import yaml
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass(frozen=True)
class ConciliacaoConfig:
    tolerancia_dias: int = 3
    tolerancia_dias_descricao: int = 45
    tolerancia_dias_fraca: int = 10
    tolerancia_dias_cnpj: int = 5
    tolerancia_valor_pct: float = 0.05
    score_minimo_d: int = 4
    dias_carencia_atraso: int = 0
    auto_detectar_conta: bool = False
    stopwords: list[str] = field(default_factory=list)
    marcadores_fatura_cartao: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LeituraConfig:
    alias_data: list[str] = field(default_factory=lambda: ["data", "fecha"])
    alias_valor: list[str] = field(default_factory=lambda: ["valor", "importe"])
    alias_debito: list[str] = field(default_factory=lambda: ["debito"])
    alias_credito: list[str] = field(default_factory=lambda: ["credito"])
    alias_descricao: list[str] = field(default_factory=lambda: ["descricao", "historico"])
    alias_conta: list[str] = field(default_factory=lambda: ["conta"])
    alias_categoria: list[str] = field(default_factory=lambda: ["categoria"])
    alias_vencimento: list[str] = field(default_factory=lambda: ["vencimento"])
    alias_situacao: list[str] = field(default_factory=lambda: ["situacao"])
    alias_saldo: list[str] = field(default_factory=lambda: ["saldo"])
    alias_documento: list[str] = field(default_factory=lambda: ["documento"])
    alias_cnpj_cpf: list[str] = field(default_factory=lambda: ["cnpj", "cpf"])
    alias_origem: list[str] = field(default_factory=lambda: ["origem"])


@dataclass(frozen=True)
class BancoDadosConfig:
    url: str = "sqlite+pysqlite:///conciliacao.db"


@dataclass(frozen=True)
class LogConfig:
    nivel: str = "INFO"


@dataclass(frozen=True)
class Config:
    conciliacao: ConciliacaoConfig
    leitura: LeituraConfig
    banco_dados: BancoDadosConfig
    log: LogConfig


def _config_path(path: str | Path | None) -> Path:
    if path is not None:
        return Path(path)
    env = os.getenv("CONCILIACAO_CONFIG")
    return Path(env) if env else DEFAULT_CONFIG_PATH


def load_config(path: str | Path | None = None) -> Config:
    """Le o YAML de configuracao; secoes ausentes usam os defaults."""
    with open(_config_path(path), "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    conc = ConciliacaoConfig(**(data.get("conciliacao") or {}))
    lei = LeituraConfig(**(data.get("leitura") or {}))
    bd = BancoDadosConfig(**(data.get("banco_dados") or {}))
    log = LogConfig(**(data.get("log") or {}))

    env_url = os.getenv("DATABASE_URL")
    if env_url:
        bd = BancoDadosConfig(url=env_url)

    return Config(conciliacao=conc, leitura=lei, banco_dados=bd, log=log)
