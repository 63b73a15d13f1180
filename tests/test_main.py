import contextlib
import io
from unittest.mock import patch

from SharePointExpenses import __main__ as cli
from tests.base import BaseGraphTestCase


class CommandLineTests(BaseGraphTestCase):

    def setUp(self) -> None:
        super().setUp()
        patcher = patch.object(cli.session_module, 'start_session', return_value=self.session)
        patcher.start()
        self.addCleanup(patcher.stop)

        auth = patch.object(cli, 'auth_manager')
        self.auth = auth.start()
        self.addCleanup(auth.stop)
        self.auth.is_authenticated.return_value = True

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = cli.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_check(self):
        code, out, _ = self.run_cli('check')
        self.assertEqual(code, 0)
        self.assertIn('REGISTRO_GASTOS: ok', out)
        self.assertIn('Categorias: ok', out)

    def test_check_lists_optional_gaps_without_failing(self):
        code, out, _ = self.run_cli('check')
        self.assertEqual(code, 0)
        self.assertIn('optional not found: colaborador_id', out)

    def test_check_reports_missing_required_column(self):
        lst = self.graph.lists['Empresas']
        lst['columns'] = [c for c in lst['columns'] if c['name'] != 'RUT']
        code, out, _ = self.run_cli('check')
        self.assertEqual(code, 1)
        self.assertIn('Empresas: missing rut', out)

    def test_check_reports_missing(self):
        self.graph.remove_list('Colaboradores')
        code, out, _ = self.run_cli('check')
        self.assertEqual(code, 1)
        self.assertIn('Colaboradores: list not found', out)

    def test_check_strict_error(self):
        lst = self.graph.lists['Empresas']
        lst['columns'] = [c for c in lst['columns'] if c['name'] != 'RUT']
        code, _, err = self.run_cli('check', '--strict')
        self.assertEqual(code, 2)
        self.assertIn('rut', err)

    def test_fields(self):
        code, out, _ = self.run_cli('fields', 'empresas')
        self.assertEqual(code, 0)
        self.assertIn('Razón Social', out)
        self.assertIn('razon_social', out)

    def test_fields_with_unmapped_column(self):
        code, out, _ = self.run_cli('fields', 'gastos')
        self.assertEqual(code, 1)
        self.assertIn('MISSING', out)

    def test_signin(self):
        self.auth.sign_in.return_value = 'ana@contoso.cl'
        code, out, _ = self.run_cli('signin')
        self.assertEqual(code, 0)
        self.assertIn('ana@contoso.cl', out)
