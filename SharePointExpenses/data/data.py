"""Expense analytics.

Turns the synchronized expenses into a pandas DataFrame and computes the aggregates
shown on the dashboard and in the reports: totals per category, company and
project, monthly totals and headline figures.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

GASTO_COLUMNS: List[str] = [
    'id',
    'fecha',
    'empresa_id',
    'empresa',
    'categoria_id',
    'categoria',
    'tipo_documento_id',
    'tipo_documento',
    'numero_documento',
    'monto',
    'monto_neto',
    'iva',
    'proyecto_id',
    'proyecto',
    'colaborador_id',
    'colaborador',
    'detalle',
    'adjuntos',
]

# Label used for expenses whose reference does not resolve to a name
UNASSIGNED = 'Sin asignar'


def _names(entities: Optional[Iterable[Any]], attr: str) -> Dict[str, str]:
    if not entities:
        return {}
    return {str(e.id): getattr(e, attr) or '' for e in entities}


def gastos_to_dataframe(gastos: Iterable[Any],
                        empresas: Optional[Iterable[Any]] = None,
                        categorias: Optional[Iterable[Any]] = None,
                        tipos_documento: Optional[Iterable[Any]] = None,
                        proyectos: Optional[Iterable[Any]] = None,
                        colaboradores: Optional[Iterable[Any]] = None) -> pd.DataFrame:
    """Build a DataFrame of expenses with reference names resolved.

    Args:
        gastos: The expenses.
        empresas, categorias, tipos_documento, proyectos, colaboradores: The referenced
            collections. References without a match are labelled :data:`UNASSIGNED`.

    Returns:
        pd.DataFrame: One row per expense with the columns of :data:`GASTO_COLUMNS`.
        ``fecha`` is a datetime column, ``monto`` is numeric.
    """
    empresa_names = _names(empresas, 'razon_social')
    categoria_names = _names(categorias, 'nombre')
    tipo_names = _names(tipos_documento, 'nombre')
    proyecto_names = _names(proyectos, 'nombre')
    colaborador_names = _names(colaboradores, 'nombre')

    rows = []
    for g in gastos:
        rows.append({
            'id': g.id,
            'fecha': g.fecha,
            'empresa_id': g.empresa_id,
            'empresa': empresa_names.get(str(g.empresa_id), UNASSIGNED),
            'categoria_id': g.categoria,
            'categoria': categoria_names.get(str(g.categoria), UNASSIGNED),
            'tipo_documento_id': g.tipo_documento,
            'tipo_documento': tipo_names.get(str(g.tipo_documento), UNASSIGNED),
            'numero_documento': g.numero_documento,
            'monto': g.monto,
            'monto_neto': g.monto_neto,
            'iva': g.iva,
            'proyecto_id': g.proyecto_id,
            'proyecto': proyecto_names.get(str(g.proyecto_id), UNASSIGNED),
            'colaborador_id': g.colaborador_id,
            'colaborador': colaborador_names.get(str(g.colaborador_id), UNASSIGNED),
            'detalle': g.detalle or '',
            'adjuntos': len(g.archivos_adjuntos or []),
        })

    df = pd.DataFrame(rows, columns=GASTO_COLUMNS)
    df['fecha'] = pd.to_datetime(df['fecha'], errors='coerce')
    df['monto'] = pd.to_numeric(df['monto'], errors='coerce').fillna(0)

    invalid = df['fecha'].isna().sum()
    if invalid:
        logging.warning(f'{invalid} expense(s) have no valid date')
    return df


def _totals_by(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Group by ``column`` and return total, count and share of the grand total, largest first."""
    if df.empty:
        return pd.DataFrame(columns=[column, 'total', 'gastos', 'weight'])

    out = (
        df.groupby(column, dropna=False)['monto']
        .agg(total='sum', gastos='count')
        .reset_index()
        .sort_values('total', ascending=False, kind='stable')
        .reset_index(drop=True)
    )
    grand_total = out['total'].sum()
    out['weight'] = out['total'] / grand_total if grand_total else 0.0
    return out


def get_totals_by_categoria(df: pd.DataFrame) -> pd.DataFrame:
    """Total spent per category."""
    return _totals_by(df, 'categoria')


def get_totals_by_empresa(df: pd.DataFrame) -> pd.DataFrame:
    """Total spent per company."""
    return _totals_by(df, 'empresa')


def get_totals_by_proyecto(df: pd.DataFrame) -> pd.DataFrame:
    """Total spent per project."""
    return _totals_by(df, 'proyecto')


def get_monthly_totals(df: pd.DataFrame, year: Optional[int] = None) -> pd.DataFrame:
    """Total spent per calendar month.

    Args:
        df: The expenses DataFrame.
        year: Restrict to one year and include every month of it, zero filled.

    Returns:
        pd.DataFrame: Columns ``month`` (a ``pd.Period``), ``total`` and ``gastos``, in month order.
    """
    columns = ['month', 'total', 'gastos']
    df = df.dropna(subset=['fecha'])
    if year is not None:
        df = df[df['fecha'].dt.year == year]

    if df.empty and year is None:
        return pd.DataFrame(columns=columns)

    monthly = (
        df.assign(month=df['fecha'].dt.to_period('M'))
        .groupby('month')['monto']
        .agg(total='sum', gastos='count')
    )

    if year is not None:
        index = pd.period_range(f'{year}-01', f'{year}-12', freq='M', name='month')
        monthly = monthly.reindex(index, fill_value=0)

    return monthly.reset_index()[columns]


def get_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """Headline figures: total, number of expenses, average and active categories."""
    if df.empty:
        return {'total': 0, 'gastos': 0, 'promedio': 0.0, 'categorias': 0}
    return {
        'total': int(df['monto'].sum()),
        'gastos': int(len(df)),
        'promedio': float(df['monto'].mean()),
        'categorias': int(df['categoria_id'].nunique()),
    }
