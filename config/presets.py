"""
Industry presets for Smart Buffer.

Each preset is plain data: ordered pattern tables, the intent -> urgency table,
timing profiles, buffer limits and circuit breaker thresholds. Pattern order is
significant: `complete` patterns are tried top to bottom, so full sentences and
questions come before the short greeting/farewell shortcuts.
"""
import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional


TIMING_PROFILES = {
    # Fastest response, least aggregation
    'aggressive': {'urgent': 1500, 'simple': 2000, 'complex': 3000, 'maxBuffer': 2},
    # Default, good for most cases
    'balanced': {'urgent': 2000, 'simple': 3000, 'complex': 4000, 'maxBuffer': 3},
    # More buffering, better aggregation
    'conservative': {'urgent': 3000, 'simple': 4000, 'complex': 6000, 'maxBuffer': 4},
}

DEFAULT_URGENCY = {
    'appointment': 'urgent',
    'cancellation': 'urgent',
    'modification': 'urgent',
    'information': 'simple',
    'greeting': 'simple',
    'farewell': 'simple',
    'confirmation': 'simple',
    'negation': 'simple',
    'medical_query': 'complex',
    'unknown': 'complex',
}


def _common_sections() -> Dict[str, Any]:
    return {
        'timing': {'profiles': copy.deepcopy(TIMING_PROFILES)},
        'buffer': {
            'ttl': 300,           # seconds
            'maxSize': 10,        # messages per buffer
            'maxSizeKB': 50,
            'slidingTTL': True,   # extend TTL on every append
            'separator': ' ',
        },
        'circuitBreaker': {
            'redis': {'threshold': 3, 'timeout': 30000, 'resetTimeout': 60000},
            'ml': {'threshold': 2, 'timeout': 60000, 'resetTimeout': 300000},
        },
        'ml': {
            'enabled': False,
            'confidence': {'minThreshold': 0.7, 'fallbackThreshold': 0.5},
        },
    }


_WEEKDAYS = r'lunes|martes|mi[eé]rcoles|jueves|viernes|s[aá]bado|domingo'

# Trailing connectors ("quiero un", "y el") and ellipses mean more text is coming
_TRAILING_CONNECTOR = r'^.+\s(y|o|pero|que|de|del|para|con|en|el|la|los|las|un|una|mi|por)$'
_TRAILING_ELLIPSIS = r'^.+(\.\.\.|…|,)$'


MEDICAL = {
    'name': 'Medical/Healthcare Configuration',
    'description': 'Semantic patterns and timing optimized for medical consultations',
    'semantic': {
        'patterns': {
            'fragments': [
                r'^(quiero|necesito|puedo|me|cu[aá]l|c[oó]mo|d[oó]nde|cu[aá]ndo)$',
                r'^(para|en|el|la|un|una|por)$',
                r'^(quiero|necesito|busco|quer[ií]a) (un|una|el|la) (turno|cita|consulta)$',
                r'^(turno|cita|consulta|precio|horario|ubicaci[oó]n)$',
                r'^(cancelar|modificar|cambiar|reagendar)$',
                r'^(doctor|doctora|dr|dra)\.?$',
                r'^(me duele|tengo dolor|siento|me molesta)$',
                r'^(obra social|prepaga|osde|swiss|galeno)$',
                r'^cu[aá]nto (cuesta|vale|sale)$',
                r'^(mañana|tarde|noche|hoy|ayer)$',
                r'^(' + _WEEKDAYS + r')$',
                _TRAILING_CONNECTOR,
                _TRAILING_ELLIPSIS,
            ],
            'complete': [
                # Appointment requests
                r'(quiero|quer[ií]a) (un turno|una cita|agendar) (para|en|el|la) .+',
                r'necesito (un turno|una cita) .+',
                r'puedo (agendar|solicitar) .+ (turno|cita)',
                # Information requests
                r'(cu[aá]l es|cu[aá]nto (cuesta|vale|sale)) (el precio|la tarifa|el costo) .+',
                r'(d[oó]nde (est[aá]|queda)|cu[aá]l es la direcci[oó]n|ubicaci[oó]n del) consultorio',
                r'(qu[eé]|cu[aá]les) (horarios|d[ií]as) (atiende|trabaja|tiene)',
                r'(acepta|atiende|toma) (obra social|prepaga|osde|swiss medical)',
                # Modifications
                r'necesito (cancelar|modificar|cambiar|reagendar) (mi|el) (turno|cita) .+',
                r'(quiero|necesito) cambiar (mi turno|la fecha|el horario) .+',
                # Medical queries
                r'me duele .+ (desde|hace|por)',
                r'tengo (dolor|molestia|problema) (en|de) .+',
                # Grammatically complete questions
                r'.+\?$',
                # Greetings and farewells
                r'^(hola|buenos d[ií]as|buenas tardes|buenas noches)( doctor| doctora)?[.!]?$',
                r'^(gracias|muchas gracias|perfecto|excelente|listo|ok)[.!]?$',
                r'^(hasta luego|nos vemos|que tenga buen d[ií]a|chau|adi[oó]s)[.!]?$',
            ],
            'intents': {
                'appointment': r'turno|cita|agendar|reservar|solicitar|pedir',
                'cancellation': r'cancelar|anular|eliminar|quitar',
                'modification': r'cambiar|modificar|reagendar|mover|reprogramar',
                'information': r'precio|costo|tarifa|horario|ubicaci[oó]n|direcci[oó]n|obras? social|prepaga',
                'medical_query': r'dolor|duele|molestia|s[ií]ntoma|enferm|salud|medicina',
                'greeting': r'\b(hola|buenos|buenas|buen d[ií]a)\b',
                'farewell': r'\b(gracias|chau|hasta luego|adi[oó]s|nos vemos)\b',
                'confirmation': r'\b(s[ií]|ok|perfecto|excelente|listo|bien|dale)\b',
                'negation': r'\b(no|nunca|jam[aá]s|para nada|de ninguna manera)\b',
            },
            'entities': {
                'dni': r'\b\d{7,8}\b',
                'date': r'\b\d{1,2}[/\-]\d{1,2}[/\-](\d{4}|\d{2})\b|\b(pasado mañana|mañana|hoy|' + _WEEKDAYS + r')\b',
                'time': r'\b\d{1,2}:\d{2}(\s*(am|pm))?\b|\b\d{1,2}\s*(am|pm|hs)\b',
                'phone': r'(\+54\s?)?\b(\d{2,4}[-\s]?)?\d{6,8}\b',
                'age': r'\b\d{1,3}\s*(años?|years? old)\b',
                'insurance': r'\b(osde|swiss medical|galeno|medicus|sancor|federada|ioma|pami)\b',
                'specialties': r'\b(cl[ií]nica|cardiolog|dermatolog|ginecolog|pediatr|psicolog|traumatolog|oftalmolog)\w*',
                'symptoms': r'\b(dolor de cabeza|dolor|fiebre|tos|n[aá]useas|mareo)\b',
            },
        },
        'urgency': dict(DEFAULT_URGENCY),
    },
    **_common_sections(),
}


ECOMMERCE = {
    'name': 'E-commerce Configuration',
    'description': 'Semantic patterns for online stores: orders, shipping and returns',
    'semantic': {
        'patterns': {
            'fragments': [
                r'^(quiero|necesito|busco|tienen|hay|cu[aá]nto|d[oó]nde)$',
                r'^(comprar|pedido|env[ií]o|precio|talle|color|stock)$',
                r'^(el|la|un|una|para|de|con)$',
                r'^(quiero|necesito) (comprar|pedir|devolver)$',
                _TRAILING_CONNECTOR,
                _TRAILING_ELLIPSIS,
            ],
            'complete': [
                r'(d[oó]nde est[aá]|estado de) (mi|el) (pedido|env[ií]o|compra)',
                r'(quiero|necesito) (comprar|pedir) .+',
                r'(quiero|necesito) (devolver|cambiar) .+',
                r'(cancelar|anular) (mi|el) (pedido|compra)',
                r'(cu[aá]nto (cuesta|sale|vale)|precio de) .+',
                r'.+\?$',
                r'^(hola|buenos d[ií]as|buenas tardes|buenas noches)[.!]?$',
                r'^(gracias|muchas gracias|perfecto|listo|ok)[.!]?$',
                r'^(chau|adi[oó]s|hasta luego)[.!]?$',
            ],
            'intents': {
                'appointment': r'retiro en tienda|agendar entrega|coordinar entrega',
                'cancellation': r'cancelar|anular',
                'modification': r'cambiar|modificar|devolver|devoluci[oó]n',
                'information': r'precio|costo|stock|talle|color|env[ií]o|medios de pago|cuotas',
                'greeting': r'\b(hola|buenos|buenas)\b',
                'farewell': r'\b(gracias|chau|adi[oó]s|hasta luego)\b',
                'confirmation': r'\b(s[ií]|ok|perfecto|listo|dale)\b',
                'negation': r'\b(no|nunca|para nada)\b',
                'order_status': r'pedido|seguimiento|tracking|lleg[oó]|no lleg[aó]',
            },
            'entities': {
                'order_id': r'\b(#|n[°º]\s?)?\d{5,10}\b',
                'email': r'\b[\w.+-]+@[\w-]+\.[\w.]+\b',
                'amount': r'\$\s?\d+([.,]\d{2})?',
                'date': r'\b\d{1,2}[/\-]\d{1,2}([/\-](\d{4}|\d{2}))?\b|\b(pasado mañana|mañana|hoy|' + _WEEKDAYS + r')\b',
                'size': r'\btalle\s+\w+\b',
            },
        },
        'urgency': {**DEFAULT_URGENCY, 'order_status': 'urgent'},
    },
    **_common_sections(),
}


GENERIC = {
    'name': 'Generic Configuration',
    'description': 'Language-light defaults for Spanish and English chat',
    'semantic': {
        'patterns': {
            'fragments': [
                r'^(quiero|necesito|i want|i need|can i|how|where|when)$',
                r'^(y|o|pero|and|or|but|the|a|an)$',
                _TRAILING_CONNECTOR,
                r'^.+\s(and|or|but|the|a|an|to|for|with|of)$',
                _TRAILING_ELLIPSIS,
            ],
            'complete': [
                r'.+\?$',
                r'.+[.!]$',
                r'^(hola|hello|hi|hey|buenos d[ií]as|buenas tardes|good morning)[.!]?$',
                r'^(gracias|thanks|thank you|ok|okay|listo|perfecto)[.!]?$',
                r'^(chau|adi[oó]s|bye|goodbye)[.!]?$',
            ],
            'intents': {
                'appointment': r'turno|cita|agendar|reservar|appointment|book|schedule',
                'cancellation': r'cancelar|anular|cancel',
                'modification': r'cambiar|modificar|reprogramar|change|reschedule',
                'information': r'precio|horario|direcci[oó]n|price|hours|address|info',
                'greeting': r'\b(hola|hello|hi|hey|buenos|buenas|good morning)\b',
                'farewell': r'\b(gracias|chau|adi[oó]s|thanks|thank you|bye|goodbye)\b',
                'confirmation': r'\b(s[ií]|yes|ok|okay|perfecto|listo|sure)\b',
                'negation': r'\b(no|nunca|never|nope)\b',
            },
            'entities': {
                'date': r'\b\d{1,2}[/\-]\d{1,2}[/\-](\d{4}|\d{2})\b|\b(mañana|hoy|tomorrow|today)\b',
                'time': r'\b\d{1,2}:\d{2}(\s*(am|pm))?\b',
                'email': r'\b[\w.+-]+@[\w-]+\.[\w.]+\b',
                'phone': r'\+?\b\d[\d\s-]{6,14}\d\b',
            },
        },
        'urgency': dict(DEFAULT_URGENCY),
    },
    **_common_sections(),
}


PRESETS = {
    'medical': MEDICAL,
    'ecommerce': ECOMMERCE,
    'generic': GENERIC,
}


def load_preset(name: str, custom_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load an industry preset as a fresh, mutable copy.

    Args:
        name: Preset name (medical, ecommerce, generic or custom)
        custom_path: JSON file used when name is 'custom'

    Returns:
        Preset dictionary

    Raises:
        ValueError: Unknown preset or missing custom path
        FileNotFoundError: Custom preset file does not exist
    """
    key = (name or 'medical').lower()

    if key == 'custom':
        if not custom_path:
            raise ValueError("CUSTOM_CONFIG_PATH must be set when INDUSTRY_CONFIG is 'custom'")
        with Path(custom_path).open(encoding='utf-8') as handle:
            custom = json.load(handle)
        # Custom files only need to override what differs from the common sections
        merged = _common_sections()
        for section, value in custom.items():
            if isinstance(value, dict) and isinstance(merged.get(section), dict):
                merged[section].update(value)
            else:
                merged[section] = value
        return merged

    if key not in PRESETS:
        raise ValueError(f"Unknown industry preset '{name}' (available: {', '.join(PRESETS)})")

    return copy.deepcopy(PRESETS[key])
