import math
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, List, Tuple

import structlog

from domain.errors import EmpresaNaoEncontradaError, FiltroInvalidoError, HistoricoError
from domain.model.cadastro import STATUS_ATIVO, Empresa
from domain.model.disparo import ControleMensal, HistoricoDisparo, StatusDisparo
from domain.model.filtros import (
    FORMATOS_EXPORTACAO,
    ControleMensalFiltros,
    ExportacaoConfig,
    FiltrosAvancados,
)
from domain.model.query import Clause
from domain.model.relatorio import (
    ColaboradorComFalhas,
    EstatisticasEmpresa,
    EstatisticasPerformance,
    ExportacaoResultado,
    HistoricoEmpresa,
    RelatorioDetalhado,
    RelatorioMetricas,
    taxa_sucesso,
)
from domain.service.consultas import (
    CAMPO_DATA,
    CONTROLE_ORDER,
    HISTORICO_JOINS,
    HISTORICO_ORDER,
    JOIN_EMPRESA,
    TABLE_COLABORADORES,
    TABLE_CONTROLE,
    TABLE_EMPRESAS,
    TABLE_HISTORICO,
    clausulas_do_mes,
    montar_clausulas_controle,
    montar_clausulas_historico,
)
from domain.service.exportacao import linha_exportacao, linha_metricas
from domain.service.periodo import como_local, meses_atras
from ports.data_backend import DataBackendPort

logger = structlog.get_logger(__name__).bind(service="historico")

_ATIVO = Clause.eq("status", STATUS_ATIVO)
_ENVIADO = Clause.eq("status", StatusDisparo.ENVIADO.value)
_FALHOU = Clause.eq("status", StatusDisparo.FALHOU.value)
_UM_DIA = timedelta(days=1)


class HistoricoService:
    """
    Métricas e relatórios do histórico de disparos de books.

    Sem estado próprio: cada chamada lê o backend novamente. Toda operação
    devolve o resultado completo ou levanta `HistoricoError` com a mensagem
    prefixada pelo nome da operação.
    """

    def __init__(
        self,
        backend: DataBackendPort,
        tz: tzinfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.backend = backend
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------ #
    #  Métricas mensais                                                  #
    # ------------------------------------------------------------------ #
    def calcular_metricas_mensais(self, mes: int, ano: int) -> RelatorioMetricas:
        log = logger.bind(mes=mes, ano=ano)
        log.info("historico.metricas_mensais.start")

        with self._operacao("Erro ao calcular métricas mensais", log):
            metricas = self._metricas_mensais(mes, ano)

        log.info("historico.metricas_mensais.success", **metricas.to_dict())
        return metricas

    def identificar_empresas_sem_books(self, mes: int, ano: int) -> List[Empresa]:
        log = logger.bind(mes=mes, ano=ano)
        with self._operacao("Erro ao identificar empresas sem books", log):
            _, sem_books = self._particionar_empresas(mes, ano)

        log.info("historico.empresas_sem_books.success", total=len(sem_books))
        return sem_books

    def buscar_todas_empresas_relatorio(
        self, mes: int, ano: int
    ) -> Tuple[List[Empresa], List[Empresa]]:
        """Empresas ativas separadas em (com books, sem books) no mês."""
        log = logger.bind(mes=mes, ano=ano)
        with self._operacao("Erro ao buscar empresas para relatório", log):
            return self._particionar_empresas(mes, ano)

    # ------------------------------------------------------------------ #
    #  Histórico                                                         #
    # ------------------------------------------------------------------ #
    def buscar_historico_detalhado(self, filtros: FiltrosAvancados) -> List[HistoricoDisparo]:
        log = logger.bind(op="historico_detalhado")
        with self._operacao("Erro ao buscar histórico detalhado", log):
            historico = self._buscar_historico(filtros)

        log.info("historico.detalhado.success", total=len(historico))
        return historico

    def buscar_controles_mensais(self, filtros: ControleMensalFiltros) -> List[ControleMensal]:
        log = logger.bind(op="controles_mensais", mes=filtros.mes, ano=filtros.ano)
        with self._operacao("Erro ao buscar controles mensais", log):
            return self._buscar_controles(filtros)

    def gerar_relatorio_mensal(self, mes: int, ano: int) -> RelatorioDetalhado:
        log = logger.bind(mes=mes, ano=ano)
        log.info("historico.relatorio_mensal.start")

        with self._operacao("Erro ao gerar relatório mensal", log):
            metricas = self._metricas_mensais(mes, ano)
            historico = self._buscar_historico(
                FiltrosAvancados(mes=mes, ano=ano, incluir_inativos=False)
            )
            controles = self._buscar_controles(ControleMensalFiltros(mes=mes, ano=ano))

        log.info(
            "historico.relatorio_mensal.success",
            historico=len(historico),
            controles=len(controles),
        )
        return RelatorioDetalhado(
            mes=mes,
            ano=ano,
            metricas=metricas,
            historico=historico,
            controles_mensais=controles,
        )

    # ------------------------------------------------------------------ #
    #  Estatísticas                                                      #
    # ------------------------------------------------------------------ #
    def buscar_estatisticas_performance(
        self, data_inicio: datetime, data_fim: datetime
    ) -> EstatisticasPerformance:
        log = logger.bind(op="estatisticas_performance")
        with self._operacao("Erro ao buscar estatísticas de performance", log):
            inicio, fim = como_local(data_inicio, self.tz), como_local(data_fim, self.tz)
            rows = self.backend.select(
                TABLE_HISTORICO,
                (Clause.gte(CAMPO_DATA, inicio), Clause.lte(CAMPO_DATA, fim)),
            )
            if not rows:
                return EstatisticasPerformance()

            total = len(rows)
            sucessos = sum(1 for r in rows if r.get("status") == StatusDisparo.ENVIADO.value)
            falhas = sum(1 for r in rows if r.get("status") == StatusDisparo.FALHOU.value)
            empresas = {r.get("empresa_id") for r in rows} - {None}
            colaboradores = {r.get("colaborador_id") for r in rows} - {None}

            periodo = fim - inicio
            media = 0
            if periodo >= _UM_DIA:
                media = round(total / math.ceil(periodo / _UM_DIA), 2)

            stats = EstatisticasPerformance(
                total_disparos=total,
                sucessos=sucessos,
                falhas=falhas,
                taxa_sucesso=taxa_sucesso(sucessos, falhas),
                empresas_atendidas=len(empresas),
                colaboradores_atendidos=len(colaboradores),
                media_disparos_por_dia=media,
            )

        log.info("historico.estatisticas_performance.success", **stats.to_dict())
        return stats

    def buscar_historico_empresa(self, empresa_id: str, meses: int = 12) -> HistoricoEmpresa:
        log = logger.bind(empresa_id=empresa_id, meses=meses)
        with self._operacao("Erro ao buscar histórico da empresa", log):
            rows = self.backend.select(TABLE_EMPRESAS, (Clause.eq("id", empresa_id),))
            if not rows:
                raise EmpresaNaoEncontradaError(f"Empresa não encontrada: {empresa_id}")
            empresa = Empresa.from_row(rows[0])

            historico = self._buscar_historico(
                FiltrosAvancados(
                    empresa_id=empresa_id,
                    data_inicio=meses_atras(self._agora(), meses),
                    incluir_inativos=True,
                )
            )

        sucessos = sum(1 for h in historico if h.status == StatusDisparo.ENVIADO.value)
        falhas = sum(1 for h in historico if h.status == StatusDisparo.FALHOU.value)
        estatisticas = EstatisticasEmpresa(
            total_envios=len(historico),
            sucessos=sucessos,
            falhas=falhas,
            taxa_sucesso=taxa_sucesso(sucessos, falhas),
            ultimo_envio=historico[0].data_disparo if historico else None,
        )
        log.info("historico.empresa.success", total=estatisticas.total_envios)
        return HistoricoEmpresa(empresa=empresa, historico=historico, estatisticas=estatisticas)

    def buscar_colaboradores_com_falhas(
        self, limite: int = 10, meses: int = 3
    ) -> List[ColaboradorComFalhas]:
        """
        Colaboradores com mais falhas de envio nos últimos `meses`.

        O agrupamento é por par (colaborador, empresa): um colaborador que
        falhou sob duas empresas aparece uma vez para cada uma.
        """
        log = logger.bind(limite=limite, meses=meses)
        with self._operacao("Erro ao buscar colaboradores com falhas", log):
            if limite < 0:
                raise FiltroInvalidoError(f"Limite inválido: {limite}")

            rows = self.backend.select(
                TABLE_HISTORICO,
                (_FALHOU, Clause.gte(CAMPO_DATA, meses_atras(self._agora(), meses))),
                HISTORICO_JOINS,
                HISTORICO_ORDER,
            )

            grupos: Dict[Tuple[str, str], ColaboradorComFalhas] = {}
            for falha in map(HistoricoDisparo.from_row, rows):
                if not falha.colaborador or not falha.empresa:
                    continue
                key = (falha.colaborador.id, falha.empresa.id)
                grupo = grupos.get(key)
                if grupo is None:
                    # linhas em ordem decrescente: a primeira é a mais recente
                    grupo = grupos[key] = ColaboradorComFalhas(
                        colaborador=falha.colaborador,
                        empresa=falha.empresa,
                        total_falhas=0,
                        ultima_falha=falha.data_disparo,
                    )
                grupo.total_falhas += 1

        resultado = sorted(grupos.values(), key=lambda g: g.total_falhas, reverse=True)[:limite]
        log.info("historico.colaboradores_com_falhas.success", total=len(resultado))
        return resultado

    # ------------------------------------------------------------------ #
    #  Exportação                                                        #
    # ------------------------------------------------------------------ #
    def exportar_dados(self, config: ExportacaoConfig) -> ExportacaoResultado:
        log = logger.bind(formato=config.formato)
        with self._operacao("Erro ao exportar dados", log):
            if config.formato not in FORMATOS_EXPORTACAO:
                raise FiltroInvalidoError(f"Formato de exportação inválido: {config.formato}")

            filtros = config.filtros
            historico = self._buscar_historico(filtros)

            dados = []
            if config.incluir_detalhes:
                dados = [linha_exportacao(item, self.tz) for item in historico]

            com_periodo = bool(filtros.mes and filtros.ano)
            if config.incluir_metricas and com_periodo:
                metricas = self._metricas_mensais(filtros.mes, filtros.ano)
                dados.insert(0, linha_metricas(metricas))

            nome_arquivo = f"historico_books_{self._agora().date().isoformat()}"
            if com_periodo:
                nome_arquivo += f"_{filtros.mes:02d}_{filtros.ano}"

        log.info("historico.exportacao.success", linhas=len(dados), arquivo=nome_arquivo)
        return ExportacaoResultado(dados=dados, nome_arquivo=nome_arquivo, tipo=config.formato)

    # ------------------------------------------------------------------ #
    #  Helpers                                                           #
    # ------------------------------------------------------------------ #
    @contextmanager
    def _operacao(self, prefixo: str, log):
        try:
            yield
        except HistoricoError as exc:
            log.error("historico.operacao.error", operacao=prefixo, error=exc.message)
            raise exc.with_prefix(prefixo) from exc
        except Exception as exc:
            log.exception("historico.operacao.unexpected_error", operacao=prefixo)
            raise HistoricoError(f"{prefixo}: {exc}") from exc

    def _agora(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def _metricas_mensais(self, mes: int, ano: int) -> RelatorioMetricas:
        janela = clausulas_do_mes(mes, ano, self.tz)

        total_empresas = self.backend.count(TABLE_EMPRESAS)
        empresas_ativas = self.backend.count(TABLE_EMPRESAS, (_ATIVO,))
        total_colaboradores = self.backend.count(TABLE_COLABORADORES)
        colaboradores_ativos = self.backend.count(TABLE_COLABORADORES, (_ATIVO,))
        enviados = self.backend.count(TABLE_HISTORICO, (_ENVIADO, *janela))
        falhas = self.backend.count(TABLE_HISTORICO, (_FALHOU, *janela))

        com_books, sem_books = self._particionar_empresas(mes, ano)

        return RelatorioMetricas(
            total_empresas=total_empresas,
            empresas_ativas=empresas_ativas,
            total_colaboradores=total_colaboradores,
            colaboradores_ativos=colaboradores_ativos,
            emails_enviados_mes=enviados,
            emails_falharam_mes=falhas,
            taxa_sucesso_mes=taxa_sucesso(enviados, falhas),
            empresas_sem_books=sem_books,
            empresas_com_books=com_books,
        )

    def _particionar_empresas(self, mes: int, ano: int) -> Tuple[List[Empresa], List[Empresa]]:
        janela = clausulas_do_mes(mes, ano, self.tz)

        rows = self.backend.select(TABLE_EMPRESAS, (_ATIVO,))
        empresas = [e for e in map(Empresa.from_row, rows) if e.ativa]
        if not empresas:
            return [], []

        disparos = self.backend.select(TABLE_HISTORICO, (_ENVIADO, *janela))
        com_disparo = {d.get("empresa_id") for d in disparos}

        com_books = [e for e in empresas if e.id in com_disparo]
        sem_books = [e for e in empresas if e.id not in com_disparo]
        return com_books, sem_books

    def _buscar_historico(self, filtros: FiltrosAvancados) -> List[HistoricoDisparo]:
        clauses = montar_clausulas_historico(filtros, self.tz)
        rows = self.backend.select(TABLE_HISTORICO, clauses, HISTORICO_JOINS, HISTORICO_ORDER)
        historico = [HistoricoDisparo.from_row(r) for r in rows]

        if not filtros.incluir_inativos:
            historico = [
                h for h in historico
                if h.empresa and h.empresa.ativa and h.colaborador and h.colaborador.ativo
            ]
        return historico

    def _buscar_controles(self, filtros: ControleMensalFiltros) -> List[ControleMensal]:
        rows = self.backend.select(
            TABLE_CONTROLE,
            montar_clausulas_controle(filtros),
            (JOIN_EMPRESA,),
            CONTROLE_ORDER,
        )
        return [ControleMensal.from_row(r) for r in rows if r.get(JOIN_EMPRESA.name)]
