from __future__ import annotations

from datetime import tzinfo
from typing import Any, Dict

from domain.model.disparo import STATUS_LABELS, HistoricoDisparo
from domain.model.relatorio import RelatorioMetricas

COLUNAS = (
    "Data Disparo",
    "Empresa",
    "Colaborador",
    "Email",
    "Status",
    "Template",
    "Assunto",
    "Erro",
    "Emails CC",
)
FORMATO_DATA = "%d/%m/%Y %H:%M:%S"


def formatar_status(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def linha_exportacao(item: HistoricoDisparo, tz: tzinfo) -> Dict[str, Any]:
    data = item.data_disparo.astimezone(tz).strftime(FORMATO_DATA) if item.data_disparo else ""
    return {
        "Data Disparo": data,
        "Empresa": item.empresa.nome_completo if item.empresa else "",
        "Colaborador": item.colaborador.nome_completo if item.colaborador else "",
        "Email": item.colaborador.email if item.colaborador else "",
        "Status": formatar_status(item.status),
        "Template": item.template_id or "",
        "Assunto": item.assunto or "",
        "Erro": item.erro_detalhes or "",
        "Emails CC": ", ".join(item.emails_cc),
    }


def linha_metricas(metricas: RelatorioMetricas) -> Dict[str, Any]:
    """Linha-resumo inserida no topo da exportação."""
    linha = dict.fromkeys(COLUNAS, "")
    linha.update({
        "Data Disparo": "MÉTRICAS DO MÊS",
        "Empresa": f"Total de Empresas: {metricas.total_empresas}",
        "Colaborador": f"Empresas Ativas: {metricas.empresas_ativas}",
        "Email": f"E-mails Enviados: {metricas.emails_enviados_mes}",
        "Status": f"Taxa de Sucesso: {metricas.taxa_sucesso_mes}%",
    })
    return linha
