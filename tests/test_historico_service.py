import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from domain.errors import (
    BackendError,
    EmpresaNaoEncontradaError,
    FiltroInvalidoError,
    HistoricoError,
    PeriodoInvalidoError,
)
from domain.model.filtros import ExportacaoConfig, FiltrosAvancados
from domain.service.historico_service import HistoricoService
from tests.helpers.fake_backend import FakeBackend, colaborador, disparo, empresa

SP = ZoneInfo("America/Sao_Paulo")
AGORA = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _service(tables) -> tuple[HistoricoService, FakeBackend]:
    backend = FakeBackend(tables)
    return HistoricoService(backend, SP, clock=lambda: AGORA), backend


def _cenario_marco():
    """10 empresas (8 ativas), 25 colaboradores (20 ativos), 15 envios + 3 falhas em março."""
    empresas = [empresa(f"e{i}") for i in range(1, 9)] + [
        empresa("e9", "inativo"),
        empresa("e10", "inativo"),
    ]
    colaboradores = [colaborador(f"c{i}", "e1") for i in range(1, 21)] + [
        colaborador(f"c{i}", "e1", "inativo") for i in range(21, 26)
    ]
    disparos = [
        disparo(f"ok{i}", f"e{i % 3 + 1}", "c1", "enviado", f"2024-03-{i + 1:02d}T15:00:00Z")
        for i in range(15)
    ]
    disparos += [
        disparo(f"f{i}", "e4", "c2", "falhou", f"2024-03-2{i}T15:00:00Z") for i in range(3)
    ]
    disparos += [
        disparo("fev", "e5", "c1", "enviado", "2024-02-20T15:00:00Z"),
        disparo("abr", "e6", "c1", "enviado", "2024-04-20T15:00:00Z"),
        disparo("agendado", "e7", "c1", "agendado", "2024-03-20T15:00:00Z"),
        disparo("cancelado", "e8", "c1", "cancelado", "2024-03-20T15:00:00Z"),
    ]
    return {
        "empresas_clientes": empresas,
        "colaboradores": colaboradores,
        "historico_disparos": disparos,
    }


class CalcularMetricasMensaisTest(unittest.TestCase):
    def test_metricas_de_marco(self) -> None:
        service, _ = _service(_cenario_marco())
        metricas = service.calcular_metricas_mensais(3, 2024)

        self.assertEqual(metricas.total_empresas, 10)
        self.assertEqual(metricas.empresas_ativas, 8)
        self.assertEqual(metricas.total_colaboradores, 25)
        self.assertEqual(metricas.colaboradores_ativos, 20)
        self.assertEqual(metricas.emails_enviados_mes, 15)
        self.assertEqual(metricas.emails_falharam_mes, 3)
        self.assertEqual(metricas.taxa_sucesso_mes, 83.33)
        self.assertEqual([e.id for e in metricas.empresas_com_books], ["e1", "e2", "e3"])
        self.assertEqual(
            [e.id for e in metricas.empresas_sem_books], ["e4", "e5", "e6", "e7", "e8"]
        )

    def test_taxa_igual_a_formula_arredondada(self) -> None:
        for enviados, falhas in ((1, 2), (2, 1), (7, 0), (0, 4), (5, 5)):
            with self.subTest(enviados=enviados, falhas=falhas):
                disparos = [
                    disparo(f"ok{i}", "e1", "c1", "enviado", "2024-03-10T12:00:00Z")
                    for i in range(enviados)
                ] + [
                    disparo(f"f{i}", "e1", "c1", "falhou", "2024-03-10T12:00:00Z")
                    for i in range(falhas)
                ]
                service, _ = _service({"historico_disparos": disparos})
                metricas = service.calcular_metricas_mensais(3, 2024)
                self.assertEqual(
                    metricas.taxa_sucesso_mes, round(enviados / (enviados + falhas) * 100, 2)
                )

    def test_mes_sem_disparos_tem_taxa_zero(self) -> None:
        tables = _cenario_marco()
        tables["historico_disparos"] = []
        service, _ = _service(tables)

        metricas = service.calcular_metricas_mensais(3, 2024)

        self.assertEqual(metricas.taxa_sucesso_mes, 0)
        self.assertEqual(metricas.emails_enviados_mes, 0)
        self.assertEqual(
            [e.id for e in metricas.empresas_sem_books], [f"e{i}" for i in range(1, 9)]
        )

    def test_limites_do_mes_no_fuso_do_relatorio(self) -> None:
        service, _ = _service({
            "empresas_clientes": [empresa("e1")],
            "historico_disparos": [
                # 29/02 22:00 em São Paulo
                disparo("antes", "e1", "c1", "enviado", "2024-03-01T01:00:00Z"),
                # 31/03 23:30 em São Paulo
                disparo("ultimo", "e1", "c1", "enviado", "2024-04-01T02:30:00Z"),
            ],
        })
        self.assertEqual(service.calcular_metricas_mensais(3, 2024).emails_enviados_mes, 1)
        self.assertEqual(service.calcular_metricas_mensais(2, 2024).emails_enviados_mes, 1)

    def test_falha_do_backend_aborta_tudo(self) -> None:
        service, backend = _service(_cenario_marco())
        backend.fail_on.add("historico_disparos")

        with self.assertRaises(BackendError) as ctx:
            service.calcular_metricas_mensais(3, 2024)

        self.assertEqual(
            str(ctx.exception),
            "Erro ao calcular métricas mensais: falha simulada em historico_disparos",
        )

    def test_mes_invalido_e_rejeitado(self) -> None:
        service, backend = _service(_cenario_marco())
        with self.assertRaises(PeriodoInvalidoError):
            service.calcular_metricas_mensais(13, 2024)
        self.assertEqual(backend.calls, [])


class EmpresasSemBooksTest(unittest.TestCase):
    def test_retorna_empresas_sem_envio_na_ordem_da_listagem(self) -> None:
        service, _ = _service({
            "empresas_clientes": [
                empresa("company-1"),
                empresa("company-2"),
                empresa("company-3"),
                empresa("company-4", "inativo"),
            ],
            "historico_disparos": [
                disparo("d1", "company-1", "c1", "enviado", "2024-03-05T12:00:00Z"),
                disparo("d2", "company-1", "c2", "enviado", "2024-03-06T12:00:00Z"),
                disparo("d3", "company-2", "c3", "falhou", "2024-03-06T12:00:00Z"),
                disparo("d4", "company-3", "c3", "cancelado", "2024-03-06T12:00:00Z"),
            ],
        })

        sem_books = service.identificar_empresas_sem_books(3, 2024)

        self.assertEqual([e.id for e in sem_books], ["company-2", "company-3"])
        self.assertTrue(all(e.status == "ativo" for e in sem_books))

    def test_sem_empresas_ativas_nao_consulta_disparos(self) -> None:
        service, backend = _service({"empresas_clientes": [empresa("e1", "inativo")]})

        self.assertEqual(service.identificar_empresas_sem_books(3, 2024), [])
        self.assertNotIn("historico_disparos", [c[1] for c in backend.calls])

    def test_particao_com_e_sem_books(self) -> None:
        service, _ = _service(_cenario_marco())
        com_books, sem_books = service.buscar_todas_empresas_relatorio(3, 2024)
        self.assertEqual(len(com_books) + len(sem_books), 8)
        self.assertFalse({e.id for e in com_books} & {e.id for e in sem_books})


class HistoricoDetalhadoTest(unittest.TestCase):
    def setUp(self) -> None:
        self.service, self.backend = _service({
            "empresas_clientes": [empresa("e1"), empresa("e2", "inativo")],
            "colaboradores": [colaborador("c1", "e1"), colaborador("c2", "e1", "inativo")],
            "historico_disparos": [
                disparo("h1", "e1", "c1", "enviado", "2024-03-10T12:00:00Z"),
                disparo("h2", "e2", "c1", "enviado", "2024-03-12T12:00:00Z"),
                disparo("h3", "e1", "c2", "falhou", "2024-03-11T12:00:00Z"),
                disparo("h4", "e1", "sumido", "falhou", "2024-03-13T12:00:00Z"),
                disparo("h5", "e1", "c1", "falhou", "2024-03-14T12:00:00Z"),
            ],
        })

    def test_filtra_inativos_por_padrao(self) -> None:
        historico = self.service.buscar_historico_detalhado(FiltrosAvancados(mes=3, ano=2024))

        self.assertEqual([h.id for h in historico], ["h5", "h1"])
        for h in historico:
            self.assertEqual(h.empresa.status, "ativo")
            self.assertEqual(h.colaborador.status, "ativo")

    def test_incluir_inativos_mantem_tudo_em_ordem_decrescente(self) -> None:
        historico = self.service.buscar_historico_detalhado(
            FiltrosAvancados(incluir_inativos=True)
        )

        self.assertEqual([h.id for h in historico], ["h5", "h4", "h2", "h3", "h1"])
        self.assertIsNone(historico[1].colaborador)

    def test_consulta_pede_joins_e_ordem(self) -> None:
        self.service.buscar_historico_detalhado(FiltrosAvancados(empresa_id="e1"))
        _, table, clauses, joins, order = self.backend.calls[-1]

        self.assertEqual(table, "historico_disparos")
        self.assertEqual([j.name for j in joins], ["empresa", "colaborador"])
        self.assertEqual(order[0].field, "data_disparo")
        self.assertTrue(order[0].descending)

    def test_flags_de_falha_e_sucesso_juntas(self) -> None:
        with self.assertRaises(FiltroInvalidoError) as ctx:
            self.service.buscar_historico_detalhado(
                FiltrosAvancados(apenas_com_falhas=True, apenas_com_sucesso=True)
            )
        self.assertTrue(str(ctx.exception).startswith("Erro ao buscar histórico detalhado: "))


class IntervaloSemFusoTest(unittest.TestCase):
    """Datas sem fuso valem como horário de São Paulo em todas as operações."""

    def setUp(self) -> None:
        self.service, _ = _service({
            "empresas_clientes": [empresa("e1")],
            "colaboradores": [colaborador("c1", "e1")],
            # 10/03 01:00 em São Paulo, antes do início do intervalo
            "historico_disparos": [
                disparo("cedo", "e1", "c1", "enviado", "2024-03-10T04:00:00Z"),
            ],
        })
        self.inicio = datetime(2024, 3, 10, 2, 0)
        self.fim = datetime(2024, 3, 12, 0, 0)

    def test_mesmo_intervalo_nas_duas_consultas(self) -> None:
        stats = self.service.buscar_estatisticas_performance(self.inicio, self.fim)
        historico = self.service.buscar_historico_detalhado(
            FiltrosAvancados(data_inicio=self.inicio, data_fim=self.fim)
        )

        self.assertEqual(stats.total_disparos, 0)
        self.assertEqual(historico, [])

    def test_exportacao_usa_o_mesmo_fuso(self) -> None:
        resultado = self.service.exportar_dados(
            ExportacaoConfig(
                formato="csv",
                filtros=FiltrosAvancados(data_inicio=self.inicio, data_fim=self.fim),
            )
        )
        self.assertEqual(resultado.dados, [])

    def test_intervalo_local_inclui_o_disparo(self) -> None:
        inicio = datetime(2024, 3, 10, 0, 30)
        stats = self.service.buscar_estatisticas_performance(inicio, self.fim)
        historico = self.service.buscar_historico_detalhado(
            FiltrosAvancados(data_inicio=inicio, data_fim=self.fim)
        )

        self.assertEqual(stats.total_disparos, 1)
        self.assertEqual([h.id for h in historico], ["cedo"])


class GerarRelatorioMensalTest(unittest.TestCase):
    def test_compoe_metricas_historico_e_controles(self) -> None:
        tables = _cenario_marco()
        tables["controle_mensal"] = [
            {"id": "cm1", "mes": 3, "ano": 2024, "empresa_id": "e1", "status": "enviado"},
            {"id": "cm2", "mes": 3, "ano": 2024, "empresa_id": "e4", "status": "falhou"},
            {"id": "cm3", "mes": 3, "ano": 2024, "empresa_id": "sumida", "status": "pendente"},
            {"id": "cm4", "mes": 2, "ano": 2024, "empresa_id": "e1", "status": "enviado"},
        ]
        service, _ = _service(tables)

        relatorio = service.gerar_relatorio_mensal(3, 2024)

        self.assertEqual((relatorio.mes, relatorio.ano), (3, 2024))
        self.assertEqual(relatorio.metricas.emails_enviados_mes, 15)
        self.assertEqual(len(relatorio.historico), 20)
        self.assertEqual(
            sorted(c.id for c in relatorio.controles_mensais), ["cm1", "cm2"]
        )
        self.assertEqual(relatorio.controles_mensais[0].empresa.id, "e1")

    def test_falha_em_subconsulta_aborta(self) -> None:
        service, backend = _service(_cenario_marco())
        backend.fail_on.add("controle_mensal")

        with self.assertRaises(HistoricoError) as ctx:
            service.gerar_relatorio_mensal(3, 2024)
        self.assertIn("Erro ao gerar relatório mensal", str(ctx.exception))


class EstatisticasPerformanceTest(unittest.TestCase):
    def test_quatro_disparos(self) -> None:
        service, _ = _service({
            "historico_disparos": [
                disparo("d1", "e1", "c1", "enviado", "2024-03-02T12:00:00Z"),
                disparo("d2", "e1", "c2", "enviado", "2024-03-03T12:00:00Z"),
                disparo("d3", "e2", "c3", "enviado", "2024-03-04T12:00:00Z"),
                disparo("d4", "e2", "c3", "falhou", "2024-03-05T12:00:00Z"),
                disparo("fora", "e3", "c4", "enviado", "2024-04-05T12:00:00Z"),
            ],
        })

        stats = service.buscar_estatisticas_performance(
            datetime(2024, 3, 1, tzinfo=SP), datetime(2024, 3, 31, tzinfo=SP)
        )

        self.assertEqual(
            stats.to_dict(),
            {
                "total_disparos": 4,
                "sucessos": 3,
                "falhas": 1,
                "taxa_sucesso": 75,
                "empresas_atendidas": 2,
                "colaboradores_atendidos": 3,
                "media_disparos_por_dia": 0.13,
            },
        )

    def test_periodo_vazio_retorna_zeros(self) -> None:
        service, _ = _service({"historico_disparos": []})
        stats = service.buscar_estatisticas_performance(
            datetime(2024, 3, 1, tzinfo=SP), datetime(2024, 3, 31, tzinfo=SP)
        )
        self.assertEqual(stats.taxa_sucesso, 0)
        self.assertEqual(stats.total_disparos, 0)
        self.assertEqual(stats.media_disparos_por_dia, 0)

    def test_periodo_menor_que_um_dia_tem_media_zero(self) -> None:
        service, _ = _service({
            "historico_disparos": [
                disparo("d1", "e1", "c1", "enviado", "2024-03-02T12:00:00Z"),
            ],
        })
        stats = service.buscar_estatisticas_performance(
            datetime(2024, 3, 2, 8, 0, tzinfo=SP), datetime(2024, 3, 2, 18, 0, tzinfo=SP)
        )
        self.assertEqual(stats.total_disparos, 1)
        self.assertEqual(stats.media_disparos_por_dia, 0)

    def test_apenas_agendados_tem_taxa_zero(self) -> None:
        service, _ = _service({
            "historico_disparos": [
                disparo("d1", "e1", "c1", "agendado", "2024-03-02T12:00:00Z"),
            ],
        })
        stats = service.buscar_estatisticas_performance(
            datetime(2024, 3, 1, tzinfo=SP), datetime(2024, 3, 3, tzinfo=SP)
        )
        self.assertEqual(stats.taxa_sucesso, 0)
        self.assertEqual(stats.media_disparos_por_dia, 0.5)


class HistoricoEmpresaTest(unittest.TestCase):
    def test_empresa_desconhecida(self) -> None:
        service, _ = _service({"empresas_clientes": [empresa("e1")]})

        with self.assertRaises(EmpresaNaoEncontradaError) as ctx:
            service.buscar_historico_empresa("nao-existe")
        self.assertIn("Empresa não encontrada", str(ctx.exception))

    def test_estatisticas_incluem_inativos(self) -> None:
        service, _ = _service({
            "empresas_clientes": [empresa("e1", "inativo")],
            "colaboradores": [colaborador("c1", "e1"), colaborador("c2", "e1", "inativo")],
            "historico_disparos": [
                disparo("d1", "e1", "c1", "enviado", "2024-05-10T12:00:00Z"),
                disparo("d2", "e1", "c2", "falhou", "2024-04-10T12:00:00Z"),
                disparo("d3", "e1", "c1", "cancelado", "2024-03-10T12:00:00Z"),
                disparo("antigo", "e1", "c1", "enviado", "2023-01-10T12:00:00Z"),
                disparo("outra", "e2", "c1", "enviado", "2024-05-11T12:00:00Z"),
            ],
        })

        resultado = service.buscar_historico_empresa("e1")

        self.assertEqual(resultado.empresa.id, "e1")
        self.assertEqual([h.id for h in resultado.historico], ["d1", "d2", "d3"])
        stats = resultado.estatisticas
        self.assertEqual((stats.total_envios, stats.sucessos, stats.falhas), (3, 1, 1))
        self.assertEqual(stats.taxa_sucesso, 50)
        self.assertEqual(stats.ultimo_envio, datetime(2024, 5, 10, 12, tzinfo=timezone.utc))

    def test_sem_historico(self) -> None:
        service, _ = _service({"empresas_clientes": [empresa("e1")]})
        stats = service.buscar_historico_empresa("e1", meses=1).estatisticas
        self.assertIsNone(stats.ultimo_envio)
        self.assertEqual(stats.taxa_sucesso, 0)


class ColaboradoresComFalhasTest(unittest.TestCase):
    def setUp(self) -> None:
        falhas = [
            ("a1", "e1", "c1", "2024-06-10"),
            ("a2", "e1", "c1", "2024-05-10"),
            ("a3", "e1", "c1", "2024-04-10"),
            ("b1", "e1", "c2", "2024-06-01"),
            ("c1", "e2", "c3", "2024-05-20"),
            ("c2", "e2", "c3", "2024-05-21"),
            ("d1", "e2", "c1", "2024-06-12"),
            ("sem_join", "e2", "sumido", "2024-06-12"),
            ("antiga", "e1", "c2", "2024-01-10"),
        ]
        self.service, _ = _service({
            "empresas_clientes": [empresa("e1"), empresa("e2")],
            "colaboradores": [colaborador("c1"), colaborador("c2"), colaborador("c3")],
            "historico_disparos": [
                disparo(id_, emp, col, "falhou", f"{dia}T12:00:00Z")
                for id_, emp, col, dia in falhas
            ] + [disparo("ok", "e1", "c2", "enviado", "2024-06-10T12:00:00Z")],
        })

    def test_ordenado_e_limitado(self) -> None:
        resultado = self.service.buscar_colaboradores_com_falhas(limite=2)

        self.assertEqual(len(resultado), 2)
        self.assertEqual(
            [(r.colaborador.id, r.empresa.id, r.total_falhas) for r in resultado],
            [("c1", "e1", 3), ("c3", "e2", 2)],
        )
        self.assertEqual(resultado[0].ultima_falha, datetime(2024, 6, 10, 12, tzinfo=timezone.utc))

    def test_agrupa_por_colaborador_e_empresa(self) -> None:
        resultado = self.service.buscar_colaboradores_com_falhas()

        totais = [r.total_falhas for r in resultado]
        self.assertEqual(totais, sorted(totais, reverse=True))
        pares = {(r.colaborador.id, r.empresa.id): r.total_falhas for r in resultado}
        self.assertEqual(pares, {("c1", "e1"): 3, ("c3", "e2"): 2, ("c1", "e2"): 1, ("c2", "e1"): 1})

    def test_limite_negativo(self) -> None:
        with self.assertRaises(FiltroInvalidoError):
            self.service.buscar_colaboradores_com_falhas(limite=-1)


class ExportarDadosTest(unittest.TestCase):
    def setUp(self) -> None:
        tables = _cenario_marco()
        tables["historico_disparos"] = [
            disparo(
                "h1", "e1", "c1", "enviado", "2024-03-15T15:00:00Z",
                assunto="Book março", template_id="portugues",
                emails_cc=["gestor@cliente.com.br", "ti@cliente.com.br"],
            ),
            disparo(
                "h2", "e2", "c1", "falhou", "2024-03-10T15:00:00Z",
                erro_detalhes="caixa cheia",
            ),
        ]
        self.service, _ = _service(tables)

    def test_linhas_detalhadas_com_metricas(self) -> None:
        resultado = self.service.exportar_dados(
            ExportacaoConfig(
                formato="excel",
                incluir_detalhes=True,
                incluir_metricas=True,
                filtros=FiltrosAvancados(mes=3, ano=2024),
            )
        )

        self.assertEqual(resultado.tipo, "excel")
        self.assertEqual(resultado.nome_arquivo, "historico_books_2024-06-15_03_2024")
        self.assertEqual(len(resultado.dados), 3)

        resumo = resultado.dados[0]
        self.assertEqual(resumo["Data Disparo"], "MÉTRICAS DO MÊS")
        self.assertEqual(resumo["Status"], "Taxa de Sucesso: 50.0%")

        linha = resultado.dados[1]
        self.assertEqual(linha["Data Disparo"], "15/03/2024 12:00:00")
        self.assertEqual(linha["Empresa"], "Empresa e1")
        self.assertEqual(linha["Colaborador"], "Colaborador c1")
        self.assertEqual(linha["Email"], "c1@cliente.com.br")
        self.assertEqual(linha["Status"], "Enviado")
        self.assertEqual(linha["Emails CC"], "gestor@cliente.com.br, ti@cliente.com.br")
        self.assertEqual(resultado.dados[2]["Erro"], "caixa cheia")
        self.assertEqual(resultado.dados[2]["Status"], "Falhou")

    def test_sem_detalhes_e_sem_periodo(self) -> None:
        resultado = self.service.exportar_dados(
            ExportacaoConfig(formato="csv", incluir_detalhes=False, incluir_metricas=True)
        )
        self.assertEqual(resultado.dados, [])
        self.assertEqual(resultado.nome_arquivo, "historico_books_2024-06-15")

    def test_formato_invalido(self) -> None:
        with self.assertRaises(FiltroInvalidoError):
            self.service.exportar_dados(ExportacaoConfig(formato="xml"))


if __name__ == "__main__":
    unittest.main()
