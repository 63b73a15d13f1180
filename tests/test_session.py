from SharePointExpenses.core import session as session_module
from SharePointExpenses.core.gateway import GastosGateway
from SharePointExpenses.core.schema import EntityKind
from SharePointExpenses.core.signals import signals
from SharePointExpenses.settings import lib
from SharePointExpenses.status import status
from tests.base import BaseGraphTestCase, SITE_URL


class SessionTests(BaseGraphTestCase):

    def record(self, signal, name, events):
        def _slot() -> None:
            events.append(name)

        signal.connect(_slot)
        self.addCleanup(signal.disconnect, _slot)

    def test_gateways_are_cached(self):
        gateway = self.session.gateway('gastos')
        self.assertIsInstance(gateway, GastosGateway)
        self.assertIs(self.session.gateway(EntityKind.Gastos), gateway)

    def test_validate_schema(self):
        result = self.session.validate_schema()
        self.assertEqual(set(result), set(EntityKind))
        self.assertEqual(result[EntityKind.Gastos]['fecha'].name, 'FECHA')
        self.assertEqual(result[EntityKind.Categorias]['nombre'].name, 'Title')
        self.assertEqual(result[EntityKind.Empresas]['razon_social'].name, 'RazonSocial')

    def test_validate_schema_missing_list(self):
        self.graph.remove_list('Colaboradores')

        result = self.session.validate_schema(kinds=[EntityKind.Colaboradores, EntityKind.Proyectos])
        self.assertEqual(result[EntityKind.Colaboradores], {})
        self.assertIsNotNone(result[EntityKind.Proyectos]['nombre'])

        with self.assertRaises(status.ListNotFoundException):
            self.session.validate_schema(strict=True)

    def test_validate_schema_strict_missing_column(self):
        lst = self.graph.lists['Empresas']
        lst['columns'] = [c for c in lst['columns'] if c['name'] != 'RUT']

        with self.assertRaises(status.ColumnNotFoundException) as ctx:
            self.session.validate_schema(strict=True, kinds=[EntityKind.Empresas])
        self.assertEqual(ctx.exception.fields, ['rut'])

    def test_list_name_overrides(self):
        session = session_module.Session(token_provider=self.tokens, client=self.client, site_url=SITE_URL,
                                         list_names={'proyectos': 'Obras'})
        self.assertEqual(session.list_name(EntityKind.Proyectos), 'Obras')
        self.assertEqual(session.list_name(EntityKind.Gastos), 'REGISTRO_GASTOS')

        self.graph.add_list('Obras', columns=self.graph.lists['Proyectos']['columns'])
        self.graph.add_item('Obras', Title='Edificio Norte', Nombre='Edificio Norte')
        self.assertEqual([p.nombre for p in session.gateway(EntityKind.Proyectos).get_all()], ['Edificio Norte'])

    def test_settings_are_used_by_default(self):
        lists = lib.settings.get_section('lists')
        lists['empresas'] = 'Proveedores'
        lib.settings.set_section('lists', lists)
        lib.settings.set_section('fields', {'empresas': {'rut': ['RutProveedor']}})

        session = session_module.Session(token_provider=self.tokens, client=self.client, site_url=SITE_URL)
        self.assertEqual(session.list_name(EntityKind.Empresas), 'Proveedores')
        spec = next(s for s in session.field_specs(EntityKind.Empresas) if s.name == 'rut')
        self.assertEqual(spec.candidates, ('RutProveedor',))
        self.assertEqual(session.library.library_name, 'DocumentosGastos')

    def test_field_overrides(self):
        session = session_module.Session(token_provider=self.tokens, client=self.client, site_url=SITE_URL,
                                         field_overrides={'gastos': {'colaborador_id': ['RESPONSABLE']}})
        spec = next(s for s in session.field_specs(EntityKind.Gastos) if s.name == 'colaborador_id')
        self.assertEqual(spec.candidates, ('RESPONSABLE',))

        with self.assertRaises(ValueError):
            session_module.Session(token_provider=self.tokens, client=self.client,
                                   field_overrides={'gastos': {'importe': ['IMPORTE']}}).field_specs('gastos')

    def test_close(self):
        self.session.metadata.resolve_list_id('Empresas')
        self.session.lookup.get_row('Empresas', '1')
        self.session.close()

        self.assertFalse(self.session.is_authenticated())
        self.assertEqual(self.session.metadata.columns, {})
        with self.assertRaises(status.AuthRequiredException):
            self.session.gateway(EntityKind.Empresas)

    def test_start_and_end_session(self):
        events = []
        self.record(signals.sessionStarted, 'started', events)
        self.record(signals.sessionAboutToEnd, 'about to end', events)
        self.record(signals.sessionEnded, 'ended', events)

        session_module.start_session(self.session)
        self.assertIs(session_module.get_session(), self.session)

        other = session_module.Session(token_provider=self.tokens, client=self.client, site_url=SITE_URL)
        session_module.start_session(other)
        self.assertTrue(self.session.closed)

        session_module.end_session()
        self.assertIsNone(session_module.get_session())
        self.assertTrue(other.closed)
        self.assertEqual(events, ['started', 'about to end', 'ended', 'started', 'about to end', 'ended'])

        # Ending twice is a no-op
        session_module.end_session()
        self.assertEqual(len(events), 6)
