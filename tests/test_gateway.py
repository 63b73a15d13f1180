import datetime
import json

from SharePointExpenses.core import gateway
from SharePointExpenses.core.models import ArchivoAdjunto, Categoria, Empresa, EmpresaCategoria, Gasto, Proyecto
from SharePointExpenses.core.schema import BUSINESS_KEYS, EntityKind, FieldKind
from SharePointExpenses.core.signals import signals
from SharePointExpenses.status import status
from tests.base import BaseGraphTestCase, BaseTestCase


def make_gasto(**kwargs) -> Gasto:
    values = dict(
        fecha=datetime.date(2024, 3, 5),
        empresa_id='Constructora Andes',
        categoria='Materiales',
        tipo_documento='Factura',
        numero_documento='F-100',
        monto=119000,
        detalle='Cemento',
    )
    values.update(kwargs)
    return Gasto(**values)


class ConversionTests(BaseTestCase):

    def test_parse_date(self):
        self.assertEqual(gateway.parse_date('2024-03-05T03:00:00Z'), datetime.date(2024, 3, 5))
        self.assertEqual(gateway.parse_date(datetime.datetime(2024, 3, 5, 12)), datetime.date(2024, 3, 5))
        self.assertIsNone(gateway.parse_date(''))
        with self.assertLogs(level='WARNING'):
            self.assertIsNone(gateway.parse_date('05/03/2024'))

    def test_parse_attachments(self):
        value = json.dumps([{'nombre': 'a.pdf', 'url': 'https://x/a.pdf', 'tipo': 'application/pdf'}])
        self.assertEqual(gateway.parse_attachments(value),
                         [ArchivoAdjunto('a.pdf', 'https://x/a.pdf', 'application/pdf')])
        self.assertEqual(gateway.parse_attachments(None), [])
        self.assertEqual(gateway.parse_attachments(''), [])
        with self.assertLogs(level='WARNING'):
            self.assertEqual(gateway.parse_attachments('{not json'), [])

    def test_to_remote(self):
        self.assertEqual(gateway.to_remote(FieldKind.Date, datetime.date(2024, 3, 5)), '2024-03-05T00:00:00Z')
        self.assertEqual(gateway.to_remote(FieldKind.Integer, '12'), 12)
        self.assertEqual(gateway.to_remote(FieldKind.Choice, EmpresaCategoria.PersonaNatural), 'Persona Natural')

        archivos = [ArchivoAdjunto('a.pdf', 'https://x/a.pdf', 'application/pdf'),
                    ArchivoAdjunto('b.pdf', contenido=b'pending')]
        self.assertEqual(json.loads(gateway.to_remote(FieldKind.Attachments, archivos)),
                         [{'nombre': 'a.pdf', 'url': 'https://x/a.pdf', 'tipo': 'application/pdf'}])

    def test_from_remote(self):
        self.assertEqual(gateway.from_remote(FieldKind.Reference, 3.0), '3')
        self.assertEqual(gateway.from_remote(FieldKind.Integer, '119000.0'), 119000)
        self.assertTrue(gateway.from_remote(FieldKind.Boolean, 'Sí'))
        self.assertFalse(gateway.from_remote(FieldKind.Boolean, 'No'))
        self.assertEqual(gateway.from_remote(FieldKind.Attachments, None), [])


class EntityGatewayTests(BaseGraphTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.empresas = self.session.gateway(EntityKind.Empresas)

        self.changed = []
        signals.listChanged.connect(self.changed.append)
        self.addCleanup(signals.listChanged.disconnect, self.changed.append)

    def test_get_all_in_store_order(self):
        empresas = self.empresas.get_all()
        self.assertEqual([e.razon_social for e in empresas], ['Constructora Andes', 'Juan Pérez'])
        self.assertEqual(empresas[1].id, '2')
        self.assertEqual(empresas[1].categoria, EmpresaCategoria.PersonaNatural)

    def test_renamed_title_column_reads_and_writes(self):
        categorias = self.session.gateway(EntityKind.Categorias)
        self.assertEqual([c.nombre for c in categorias.get_all()], ['Materiales', 'Transporte'])

        created = categorias.create(Categoria(nombre='Herramientas', color='red'))
        self.assertEqual(self.graph.item('Categorias', created.id), {'id': created.id, 'Title': 'Herramientas',
                                                                     'Color': 'red'})

    def test_create_round_trip(self):
        created = self.empresas.create(Empresa(
            id='ignored',
            razon_social='Nueva SpA',
            rut='76.000.000-1',
            correo_electronico='contacto@nueva.cl',
            categoria='Empresa',
        ))
        self.assertEqual(created.id, '3')
        self.assertEqual(created.created_at, datetime.date.today())

        row = self.graph.item('Empresas', created.id)
        self.assertEqual(row['Title'], 'Nueva SpA')
        self.assertEqual(row['RazonSocial'], 'Nueva SpA')
        self.assertEqual(row['Categoria'], 'Empresa')
        self.assertNotIn('NumeroContacto', row)

        fetched = {e.id: e for e in self.empresas.get_all()}
        self.assertEqual(fetched[created.id], created)
        self.assertEqual(self.changed, ['empresas'])

    def test_validation_happens_before_any_write(self):
        with self.assertRaises(status.ValidationException) as ctx:
            self.empresas.create(Empresa(razon_social=' ', rut='1-9'))
        self.assertEqual(ctx.exception.field, 'razon_social')
        self.assertEqual(self.graph.calls_to('POST'), [])

        with self.assertRaises(status.ValidationException):
            self.empresas.update('1', {'rut': ''})
        self.assertEqual(self.graph.calls_to('PATCH'), [])

    def test_sparse_update(self):
        updated = self.empresas.update('1', {'numero_contacto': '+56 9 1234 5678'})

        _, _, _, body = self.graph.calls_to('PATCH')[-1]
        self.assertEqual(body, {'NumeroContacto': '+56 9 1234 5678'})
        self.assertEqual(updated.razon_social, 'Constructora Andes')
        self.assertEqual(updated.numero_contacto, '+56 9 1234 5678')
        self.assertEqual(self.changed, ['empresas'])

    def test_update_ignores_id_and_create_only_fields(self):
        self.empresas.update('1', {'id': '99', 'rut': '1-9', 'created_at': datetime.date(2000, 1, 1)})
        _, _, _, body = self.graph.calls_to('PATCH')[-1]
        self.assertEqual(body, {'RUT': '1-9'})

    def test_empty_update_reads_the_row(self):
        entity = self.empresas.update('2', {})
        self.assertEqual(entity.razon_social, 'Juan Pérez')
        self.assertEqual(self.graph.calls_to('PATCH'), [])
        self.assertEqual(self.changed, [])

    def test_update_unknown_field(self):
        with self.assertRaises(ValueError):
            self.empresas.update('1', {'giro': 'Construcción'})
        self.assertEqual(self.graph.calls_to('PATCH'), [])

    def test_last_write_wins(self):
        self.empresas.update('1', {'rut': '1-1'})
        self.empresas.update('1', {'rut': '2-2'})
        self.assertEqual(self.graph.item('Empresas', '1')['RUT'], '2-2')

    def test_delete_does_not_cascade(self):
        gastos = self.session.gateway(EntityKind.Gastos)
        gasto = gastos.create(make_gasto())

        self.empresas.delete('1')
        self.assertNotIn('1', self.graph.lists['Empresas']['items'])
        self.assertEqual(self.graph.item('REGISTRO_GASTOS', gasto.id)['EMPRESALookupId'], 1)
        self.assertIn('empresas', self.changed)

    def test_delete_missing_row(self):
        with self.assertRaises(status.RemoteRejectedException) as ctx:
            self.empresas.delete('42')
        self.assertEqual(ctx.exception.status_code, 404)

    def test_lookup_index_is_invalidated_after_create(self):
        keys = BUSINESS_KEYS[EntityKind.Empresas]
        self.assertIsNone(self.session.lookup.resolve_row_id_by_field('Empresas', keys, 'Nueva SpA'))
        created = self.empresas.create(Empresa(razon_social='Nueva SpA', rut='1-9'))
        self.assertEqual(self.session.lookup.resolve_row_id_by_field('Empresas', keys, 'nueva spa'), created.id)

    def test_pagination(self):
        self.graph.page_size = 2
        proyectos = self.session.gateway(EntityKind.Proyectos)
        for i in range(4):
            proyectos.create(Proyecto(nombre=f'Obra {i}'))

        self.assertEqual([p.nombre for p in proyectos.get_all()],
                         ['Proyecto Alpha', 'Obra 0', 'Obra 1', 'Obra 2', 'Obra 3'])

    def test_tipos_documento_missing_list(self):
        self.graph.remove_list('TiposDocumento')
        errors = []

        def _slot(message: str) -> None:
            errors.append(message)

        signals.error.connect(_slot)
        self.addCleanup(signals.error.disconnect, _slot)

        with self.assertLogs(level='WARNING') as logs:
            self.assertEqual(self.session.gateway(EntityKind.TiposDocumento).get_all(), [])
        self.assertEqual(errors, [])
        self.assertFalse(any(line.startswith('ERROR') for line in logs.output))

    def test_missing_list_raises_for_other_entities(self):
        self.graph.remove_list('Proyectos')
        with self.assertRaises(status.ListNotFoundException):
            self.session.gateway(EntityKind.Proyectos).get_all()

    def test_remote_rejection_carries_store_message(self):
        self.graph.fail('POST', r'/items$', 400, "Field 'RUT' is not recognized")
        with self.assertRaises(status.RemoteRejectedException) as ctx:
            self.empresas.create(Empresa(razon_social='Nueva SpA', rut='1-9'))
        self.assertEqual(ctx.exception.remote_message, "Field 'RUT' is not recognized")
        self.assertEqual(self.changed, [])


class GastosGatewayTests(BaseGraphTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.gastos = self.session.gateway(EntityKind.Gastos)

    def row(self, gasto_id):
        return self.graph.item('REGISTRO_GASTOS', gasto_id)

    def test_business_keys_resolve_to_lookup_ids(self):
        created = self.gastos.create(make_gasto(proyecto_id='proyecto alpha'))

        row = self.row(created.id)
        self.assertEqual(row['EMPRESALookupId'], 1)
        self.assertEqual(row['TIPO_DOCUMENTOLookupId'], 1)
        self.assertEqual(row['PROYECTOLookupId'], 1)
        # CATEGORIA is a text column holding the category id
        self.assertEqual(row['CATEGORIA'], '1')
        self.assertEqual(row['FECHA'], '2024-03-05T00:00:00Z')
        self.assertEqual(row['Title'], 'F-100')

        self.assertEqual(created.empresa_id, '1')
        self.assertEqual(created.categoria, '1')
        self.assertEqual(created.tipo_documento, '1')
        self.assertEqual(created.proyecto_id, '1')

    def test_round_trip(self):
        created = self.gastos.create(make_gasto())
        self.assertEqual(self.gastos.get_all(), [created])

    def test_reference_given_by_id(self):
        created = self.gastos.create(make_gasto(empresa_id='2', categoria='2', tipo_documento='2'))
        self.assertEqual(self.row(created.id)['EMPRESALookupId'], 2)
        self.assertEqual(created.categoria, '2')

    def test_taxes_are_derived_from_the_document_type(self):
        created = self.gastos.create(make_gasto())
        self.assertEqual((created.monto_neto, created.iva, created.monto_total), (100000, 19000, 119000))

        row = self.row(created.id)
        self.assertEqual((row['MONTO_NETO'], row['IVA'], row['MONTO_TOTAL']), (100000, 19000, 119000))

    def test_untaxed_document_type(self):
        created = self.gastos.create(make_gasto(tipo_documento='Boleta', monto=5000))
        self.assertEqual((created.monto_neto, created.iva, created.monto_total), (5000, 0, 5000))

    def test_given_taxes_are_kept(self):
        created = self.gastos.create(make_gasto(monto_neto=99000, iva=20000, monto_total=119000))
        self.assertEqual(self.row(created.id)['IVA'], 20000)

    def test_tax_columns_are_optional(self):
        lst = self.graph.lists['REGISTRO_GASTOS']
        lst['columns'] = [c for c in lst['columns'] if c['name'] not in ('MONTO_NETO', 'IVA', 'MONTO_TOTAL')]

        created = self.gastos.create(make_gasto())
        row = self.row(created.id)
        for name in ('MONTO_NETO', 'IVA', 'MONTO_TOTAL'):
            self.assertNotIn(name, row)

    def test_update_amount_recomputes_taxes(self):
        created = self.gastos.create(make_gasto())
        updated = self.gastos.update(created.id, {'monto': 238000})

        _, _, _, body = self.graph.calls_to('PATCH')[-1]
        self.assertEqual(body, {'MONTO': 238000, 'MONTO_NETO': 200000, 'IVA': 38000, 'MONTO_TOTAL': 238000})
        self.assertEqual(updated.iva, 38000)

    def test_otros_without_comment_persists_empty_string(self):
        created = self.gastos.create(make_gasto(tipo_documento='Otros'))
        self.assertEqual(created.comentario_tipo_documento, '')
        self.assertEqual(self.row(created.id)['OTRO'], '')

    def test_otros_with_comment(self):
        created = self.gastos.create(make_gasto(tipo_documento='otros', comentario_tipo_documento='Peaje'))
        self.assertEqual(self.row(created.id)['OTRO'], 'Peaje')
        self.assertEqual(self.gastos.get_all()[0].comentario_tipo_documento, 'Peaje')

    def test_comment_dropped_for_other_document_types(self):
        created = self.gastos.create(make_gasto(comentario_tipo_documento='Peaje'))
        self.assertNotIn('OTRO', self.row(created.id))
        self.assertIsNone(created.comentario_tipo_documento)

    def test_update_to_otros_writes_comment(self):
        created = self.gastos.create(make_gasto())
        updated = self.gastos.update(created.id, {'tipo_documento': 'Otros', 'comentario_tipo_documento': 'Peaje'})

        row = self.row(created.id)
        self.assertEqual(row['TIPO_DOCUMENTOLookupId'], 3)
        self.assertEqual(row['OTRO'], 'Peaje')
        self.assertEqual((row['MONTO_NETO'], row['IVA']), (119000, 0))
        self.assertEqual(updated.comentario_tipo_documento, 'Peaje')

    def test_comment_update_checks_the_stored_document_type(self):
        created = self.gastos.create(make_gasto())
        self.gastos.update(created.id, {'comentario_tipo_documento': 'Peaje'})
        self.assertNotIn('OTRO', self.row(created.id))
        self.assertEqual(self.graph.calls_to('PATCH'), [])

    def test_leaving_otros_clears_the_comment(self):
        created = self.gastos.create(make_gasto(tipo_documento='Otros', comentario_tipo_documento='Peaje'))
        updated = self.gastos.update(created.id, {'tipo_documento': 'Factura'})

        _, _, _, body = self.graph.calls_to('PATCH')[-1]
        self.assertIn('OTRO', body)
        self.assertIsNone(body['OTRO'])
        self.assertIsNone(self.row(created.id)['OTRO'])
        self.assertIsNone(updated.comentario_tipo_documento)
        self.assertIsNone(self.gastos.get_all()[0].comentario_tipo_documento)

    def test_required_reference_unresolved(self):
        with self.assertRaises(status.LookupUnresolvedException) as ctx:
            self.gastos.create(make_gasto(empresa_id='Inexistente Ltda'))
        self.assertEqual(ctx.exception.field, 'empresa_id')
        self.assertEqual(self.graph.calls_to('POST'), [])

    def test_optional_reference_unresolved(self):
        with self.assertLogs(level='WARNING') as logs:
            created = self.gastos.create(make_gasto(proyecto_id='Proyecto Beta'))
        self.assertTrue(any('Proyecto Beta' in line for line in logs.output))
        self.assertIsNone(created.proyecto_id)
        self.assertNotIn('PROYECTOLookupId', self.row(created.id))

    def test_missing_column_written_under_its_own_name(self):
        with self.assertLogs(level='WARNING') as logs:
            created = self.gastos.create(make_gasto(colaborador_id='ANA@contoso.cl'))
        self.assertTrue(any('COLABORADOR' in line for line in logs.output))
        self.assertEqual(self.row(created.id)['COLABORADOR'], '1')
        self.assertEqual(self.gastos.get_all()[0].colaborador_id, '1')

    def test_read_only_columns_are_not_written(self):
        lst = self.graph.lists['REGISTRO_GASTOS']
        lst['columns'] = [dict(c, readOnly=True) if c['name'] == 'DETALLE' else c for c in lst['columns']]

        with self.assertLogs(level='WARNING'):
            created = self.gastos.create(make_gasto())
        self.assertNotIn('DETALLE', self.row(created.id))

    def test_validation(self):
        with self.assertRaises(status.ValidationException) as ctx:
            self.gastos.create(make_gasto(numero_documento=''))
        self.assertEqual(ctx.exception.field, 'numero_documento')
