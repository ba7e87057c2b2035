"""
Prompt construction for candidate ranking.

Pure functions - no database or network access. Every free-text field coming
from users is sanitised before it is interpolated into the prompt.
"""

import re

INJECTION_PATTERN = re.compile(
    r'IGNORA|IGNORE|OLVIDA|FORGET|NUEVA INSTRUCCIÓN|NEW INSTRUCTION|BYPASS|SYSTEM:|ASSISTANT:|USER:',
    re.IGNORECASE,
)
MAX_FIELD_LENGTH = 2000
NOT_SPECIFIED = 'No especificado'

SYSTEM_MESSAGE = (
    "Eres un experto en reclutamiento mexicano. "
    "Responde SOLO con JSON válido, sin markdown, sin texto adicional."
)


def sanitize_for_prompt(text):
    if not text:
        return NOT_SPECIFIED
    cleaned = INJECTION_PATTERN.sub('[filtrado]', str(text))
    cleaned = cleaned.replace('`', "'")
    return cleaned[:MAX_FIELD_LENGTH].strip()


def _join(values):
    return ', '.join(str(v) for v in (values or []) if v)


def build_vacancy_info(requisition, posting, company=None):
    """Flatten requisition + posting into the sanitised fields the prompt uses."""
    return {
        'titulo': sanitize_for_prompt(posting.title if posting else requisition.title),
        'perfil_requerido': sanitize_for_prompt(
            (posting.required_profile if posting else None) or requisition.required_profile
        ),
        'ubicacion': sanitize_for_prompt(posting.location if posting else None),
        'modalidad': sanitize_for_prompt((posting.work_mode if posting else None) or requisition.work_mode),
        'salario': (posting.approved_salary if posting else None) or requisition.approved_salary,
        'observaciones': sanitize_for_prompt((posting.notes if posting else None) or requisition.notes),
        'motivo_vacante': sanitize_for_prompt(requisition.reason),
        'cliente': sanitize_for_prompt(requisition.client_name or (posting.client_area if posting else None)),
        'area': sanitize_for_prompt(requisition.area),
        'empresa': sanitize_for_prompt(company.name if company else None),
        'sector': sanitize_for_prompt(company.sector if company else None),
    }


def _salary_expectation(candidate):
    if candidate.salary_expectation_min:
        return f"${candidate.salary_expectation_min:,.0f} - ${candidate.salary_expectation_max or candidate.salary_expectation_min:,.0f} MXN"
    return 'No especificada'


def _experience_lines(candidate, limit=3):
    entries = []
    for item in (candidate.work_experience or [])[:limit]:
        if isinstance(item, dict):
            title = item.get('puesto') or item.get('title') or ''
            company = item.get('empresa') or item.get('company') or ''
            entries.append(f"{title} en {company}".strip() if company else title)
        elif item:
            entries.append(str(item))
    return '; '.join(sanitize_for_prompt(e) for e in entries if e) or NOT_SPECIFIED


def describe_candidate(index, candidate):
    """One candidate block. Contains professional attributes only, never identity."""
    indexed = candidate.ai_indexed_at is not None
    keywords = _join(candidate.sourcing_keywords) or _join(candidate.technical_skills) or 'No especificadas'
    education = sanitize_for_prompt(candidate.education_level)
    if candidate.degree:
        education += ' en ' + sanitize_for_prompt(candidate.degree)

    return f"""
[{index}] {'✓ PERFIL INDEXADO' if indexed else '○ SIN INDEXAR'}
- Nivel experiencia: {candidate.ai_experience_level or 'No clasificado'}
- Puesto actual: {sanitize_for_prompt(candidate.current_title)}
- Empresa actual: {sanitize_for_prompt(candidate.current_company)}
- Experiencia: {_experience_lines(candidate)}
- Educación: {education}
- Keywords técnicas: {keywords}
- Industrias: {_join(candidate.detected_industries) or 'No especificadas'}
- Habilidades blandas: {_join(candidate.soft_skills) or 'No especificadas'}
- Ubicación: {sanitize_for_prompt(candidate.location)}
- Modalidad preferida: {sanitize_for_prompt(candidate.preferred_work_mode)}
- Disponibilidad: {sanitize_for_prompt(candidate.availability)}
- Expectativa salarial: {_salary_expectation(candidate)}
- Resumen profesional: {sanitize_for_prompt(candidate.ai_summary or candidate.professional_summary)}
"""


def build_prompt(vacancy_info, candidates, max_results):
    salary = vacancy_info.get('salario')
    salary_text = f"${salary:,.0f} MXN brutos" if salary else 'No especificado'
    observations = vacancy_info.get('observaciones')
    observations_block = (
        f"OBSERVACIONES ADICIONALES:\n{observations}" if observations and observations != NOT_SPECIFIED else ''
    )
    pool_text = '\n'.join(describe_candidate(i, c) for i, c in enumerate(candidates))

    return f"""Eres un experto en reclutamiento y selección de talento para el mercado mexicano. Analiza los candidatos y selecciona los {max_results} mejores matches para la vacante.

===== CONTEXTO DE LA VACANTE =====
EMPRESA SOLICITANTE:
- Empresa: {vacancy_info['empresa']}
- Sector/Industria: {vacancy_info['sector']}
- Cliente interno: {vacancy_info['cliente']}
- Área: {vacancy_info['area']}

DETALLES DE LA POSICIÓN:
- Título del puesto: {vacancy_info['titulo']}
- Motivo de la vacante: {vacancy_info['motivo_vacante']}
- Modalidad de trabajo: {vacancy_info['modalidad']}
- Ubicación: {vacancy_info['ubicacion']}
- Rango salarial: {salary_text}

PERFIL REQUERIDO:
{vacancy_info['perfil_requerido']}

{observations_block}

===== POOL DE CANDIDATOS =====
{pool_text}

===== CRITERIOS DE MATCHING =====
1. PRIORIZA candidatos marcados como "✓ PERFIL INDEXADO".
2. Considera la COMPATIBILIDAD DE SECTOR/INDUSTRIA.
3. Evalúa la COHERENCIA DEL NIVEL DE EXPERIENCIA.
4. Verifica COMPATIBILIDAD GEOGRÁFICA y de modalidad.
5. Compara EXPECTATIVAS SALARIALES vs el rango ofrecido.
6. Analiza las KEYWORDS TÉCNICAS vs los requisitos del perfil.

===== FORMATO DE RESPUESTA =====
Responde SOLO con un JSON array de los {max_results} mejores candidatos, ordenados por score (100=match perfecto).
NO incluyas markdown, NO incluyas texto adicional, SOLO el array JSON:
[
  {{
    "index": 0,
    "score": 85,
    "rationale": "Explicación concisa del match (máx 100 caracteres)",
    "matched_skills": ["habilidad1", "habilidad2"],
    "relevant_experience": ["experiencia1", "experiencia2"]
  }}
]"""


def fit_prompt(vacancy_info, candidates, max_results, max_length, min_candidates=10):
    """Build the prompt, halving the batch while it is over max_length.

    Returns (prompt, batch). The returned batch is the exact list the prompt
    indexes into; ranking output must be resolved against it.
    """
    batch = list(candidates)
    prompt = build_prompt(vacancy_info, batch, max_results)
    while len(prompt) > max_length and len(batch) > min_candidates:
        batch = batch[:max(min_candidates, (len(batch) + 1) // 2)]
        prompt = build_prompt(vacancy_info, batch, max_results)
    return prompt, batch
