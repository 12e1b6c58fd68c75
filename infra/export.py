from __future__ import annotations
import io
import pandas as pd

from logic.modelos import ResultadoConciliacao


FORMATO_DATA = "DD/MM/YYYY"


def _dec(valor):
    return float(valor) if valor is not None else None


def resultado_a_dataframes(resultado: ResultadoConciliacao) -> dict[str, pd.DataFrame]:
    """Tabelas consumidas pelos relatorios: conciliados, divergencias (por tipo) e resumo."""
    conciliados = pd.DataFrame(
        [
            {
                "camada": m.camada,
                "criterio": m.criterio,
                "data_banco": m.banco.data,
                "valor_banco": _dec(m.banco.valor),
                "desc_banco": m.banco.descricao,
                "data_omie": m.omie.data,
                "valor_omie": _dec(m.omie.valor),
                "desc_omie": m.omie.descricao,
                "dias_diferenca": m.dias_diferenca,
            }
            for m in resultado.matches
        ],
        columns=["camada", "criterio", "data_banco", "valor_banco", "desc_banco",
                 "data_omie", "valor_omie", "desc_omie", "dias_diferenca"],
    )

    linhas_div = []
    for tipo, divs in sorted(resultado.divergencias_por_tipo().items()):
        for d in divs:
            linhas_div.append({
                "tipo": tipo,
                "descricao_tipo": d.descricao_tipo,
                "origem": d.origem,
                "data": d.lancamento.data,
                "valor": _dec(d.valor),
                "descricao": d.lancamento.descricao,
                "dias_atraso": d.dias_atraso,
                "acao_sugerida": d.acao_sugerida,
            })
    divergencias = pd.DataFrame(
        linhas_div,
        columns=["tipo", "descricao_tipo", "origem", "data", "valor", "descricao", "dias_atraso", "acao_sugerida"],
    )

    futuros = resultado.lancamentos_futuros
    resumo_itens = [
        ("Periodo", resultado.periodo_ref),
        ("Conta corrente", resultado.conta_corrente_selecionada or ""),
        ("Conciliados", resultado.total_conciliados),
        *((f"Camada {c}", n) for c, n in resultado.camada_counts.items()),
        ("Divergencias", resultado.total_divergencias),
        ("Contas em atraso", resultado.contas_atraso),
        ("Cartao importaveis", resultado.cartao_importaveis),
        ("Zerados banco", resultado.lancamentos_zerados.banco),
        ("Zerados Omie", resultado.lancamentos_zerados.omie),
        ("Futuros (qtd)", futuros.quantidade),
        ("Futuros (total)", _dec(futuros.total)),
        ("Ultima data banco", futuros.ultima_data_banco.isoformat() if futuros.ultima_data_banco else ""),
        *((f"Conta excluida: {c.nome}", c.quantidade) for c in resultado.contas_excluidas),
    ]
    resumo = pd.DataFrame(resumo_itens, columns=["Indicador", "Valor"])

    return {"Conciliados": conciliados, "Divergencias": divergencias, "Resumo": resumo}


def dataframes_a_excel_bytes(
    planilhas: dict[str, pd.DataFrame],
    formato_colunas_data: dict[str, str] | None = None,
) -> bytes:
    """
    Exporta DataFrames (uma aba cada) para Excel mantendo as datas como datas.
    `formato_colunas_data` = {nome_coluna: "DD/MM/YYYY"} aplica number_format.
    """
    buff = io.BytesIO()
    with pd.ExcelWriter(buff, engine="openpyxl") as writer:
        for sheet_name, df in planilhas.items():
            df.to_excel(writer, index=False, sheet_name=sheet_name)
            if not formato_colunas_data:
                continue
            ws = writer.sheets[sheet_name]
            # Mapear nomes de colunas para letras
            headers = [c.value for c in ws[1]]
            for col_name, fmt in formato_colunas_data.items():
                if col_name in headers:
                    col_idx = headers.index(col_name) + 1
                    col_letter = ws.cell(row=1, column=col_idx).column_letter
                    for cell in ws[col_letter][1:]:
                        cell.number_format = fmt
    return buff.getvalue()


def resultado_a_excel_bytes(resultado: ResultadoConciliacao) -> bytes:
    formatos = {col: FORMATO_DATA for col in ("data_banco", "data_omie", "data")}
    return dataframes_a_excel_bytes(resultado_a_dataframes(resultado), formatos)
