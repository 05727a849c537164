"""Centralized prompt templates for LLM interactions.

Suppliers write in Spanish, so instructions and examples are in Spanish;
JSON keys stay in English so the parsing side does not depend on the
prompt language.
"""

from typing import List, Optional

from pydantic import BaseModel


PRICE_LIST_DETECTION_SYSTEM_PROMPT = """Sos un analizador experto en listas de precios enviadas por WhatsApp.
Tu tarea es decidir si el texto contiene al menos UN producto con su precio.
Respondé únicamente con un objeto JSON, sin texto adicional."""


ITEM_EXTRACTION_SYSTEM_PROMPT = """Sos un analizador experto en listas de precios enviadas por WhatsApp.
Leés el texto, identificás cada producto con su precio y lo devolvés normalizado.
Respondé únicamente con un objeto JSON, sin texto adicional."""


NAME_NORMALIZATION_SYSTEM_PROMPT = """Sos un experto en catalogación de productos de tecnología.
Recibís el texto sucio de un producto y devolvés su nombre comercial estándar.
Respondé SOLAMENTE con el nombre final, sin comillas ni explicaciones."""


IDENTITY_VALIDATION_SYSTEM_PROMPT = """Actuás como un validador estricto de identidad de productos.
Decidís si dos descripciones corresponden EXACTAMENTE al mismo producto comercial.
Respondé únicamente con un objeto JSON, sin texto adicional."""


CATEGORY_CLASSIFICATION_SYSTEM_PROMPT = """Sos un experto en hardware y tecnología.
Clasificás un producto en UNA de las categorías dadas, usando el nombre exacto.
Respondé únicamente con un objeto JSON, sin texto adicional."""


class PriceListDetectionPrompt(BaseModel):
    """Prompt schema for price list detection."""

    message: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        return f"""Si el texto NO contiene ningún producto con precio (un saludo, una pregunta,
una conversación general), devolvé exactamente:
{{"is_list": false}}

Si el texto SÍ contiene al menos un producto con precio (uno o muchos), devolvé exactamente:
{{"is_list": true}}

Ejemplos con is_list true:
- "iphone 16 pro max 1500usd"
- "Samsung S24 $800"
- "iPhone 13 128gb 450\\niPhone 14 256gb 650"

Ejemplos con is_list false:
- "Hola, buenos días!"
- "¿Tenés iPhone?"
- "Gracias por la info"

Texto a analizar:
{self.message}"""


class ItemExtractionPrompt(BaseModel):
    """Prompt schema for extracting name/price pairs from a price list."""

    message: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        return f"""Instrucciones:
- Eliminá emojis, símbolos decorativos y separadores.
- Cada línea que tenga producto + precio es un producto.
- Si una línea incluye varias variantes de color (ej: "azul/negro"), creá un producto
  por variante con el mismo precio.
- Normalizá marca y modelo: "IP", "IPH", "iphn" -> iPhone; "SAM", "s23fe" -> Samsung S23 FE;
  "MOT", "moto" -> Motorola.
- Estructura del nombre: Marca Modelo Variante Capacidad Color Otros.
- Conservá colores, capacidades (128GB, 256GB), tamaños (44mm) y ediciones (Pro, Max, Ultra, FE, SE).
- Porcentajes de batería: "85%🔋", "85 % batería" -> "85% batería"; "86/84" -> "84–86% batería".
- Precio como número limpio: $250, us$300, U$S 320, USD 270, 200 usd -> 250, 300, 320, 270, 200.
- No agrupes ni deduplicates: cada línea con precio es un producto distinto.

Si el texto no es una lista de precios devolvé {{"is_list": false, "items": []}}.

Estructura EXACTA del JSON:
{{
  "is_list": true,
  "items": [
    {{"name": "iPhone 13 128GB Blue 85% batería", "price": 325}}
  ]
}}

Texto a analizar:
{self.message}"""


class NameNormalizationPrompt(BaseModel):
    """Prompt schema for structural name normalization."""

    raw_name: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        return f"""REGLAS:
1. Estructura: [Marca] [Modelo] [Variante] [Capacidad] [Color si existe] [Estado/Batería si aplica]
2. Marca con mayúsculas correctas ("iphone" -> "iPhone", "samsung" -> "Samsung").
3. Eliminá estados irrelevantes ("nuevo", "sellado", "impecable"), precios, monedas, emojis
   y palabras de venta ("oferta", "promo", "disponible", "entrando").
4. EXCEPCIÓN: si dice "usado" o trae porcentaje de batería ("88%", "batería 90%"),
   incluilo al final como "Usado 88%".
5. Capacidad en mayúsculas (128gb -> 128GB, 1tb -> 1TB).

EJEMPLOS:
"Celular Samsung s23 fe de 128 gigas color crema - nuevo caja sellada" -> Samsung S23 FE 128GB Cream
"🔥 OFERTA IPHONE 13 NORMAL 128 BLUE 🔋88%" -> iPhone 13 128GB Blue Usado 88%
"MOTO G54 5G 256/8 VEGAN LEATHER USADO" -> Motorola Moto G54 5G 256GB Vegan Leather Usado

No repitas el input ni expliques los cambios.

Producto: {self.raw_name}"""


class IdentityValidationPrompt(BaseModel):
    """Prompt schema for confirming two names denote the same product."""

    input_name: str
    candidate_name: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        return f"""INPUT USUARIO: {self.input_name}
CANDIDATO DB: {self.candidate_name}

REGLAS ESTRICTAS:
1. Modelos diferentes = false ("iPhone 13" vs "iPhone 14").
2. Variantes diferentes = false ("Pro" vs "Pro Max").
3. Capacidades diferentes = false ("128GB" vs "256GB").
4. Color: si el usuario NO especifica color, ignorá el color del candidato.
   Si lo especifica y es distinto, es false.

Ejemplos:
- "iPhone 13 128" vs "iPhone 13 128GB Blue" -> true
- "S23 Ultra" vs "S23 Plus" -> false
- "iPhone 15" vs "iPhone 15 Pro" -> false

Respondé exactamente {{"same": true}} o {{"same": false}}."""


class CategoryOption(BaseModel):
    """One configured category offered to the classifier."""

    name: str
    description: Optional[str] = None


class CategoryClassificationPrompt(BaseModel):
    """Prompt schema for category classification."""

    product_name: str
    price: float
    categories: List[CategoryOption]
    default_category: str

    def to_prompt(self) -> str:
        """Convert to prompt text."""
        lines = [
            f"- {c.name}: {c.description}" if c.description else f"- {c.name}"
            for c in self.categories
        ]
        category_list = "\n".join(lines)

        return f"""Categorías disponibles (usá el nombre exacto):
{category_list}

REGLAS:
1. Un iPhone cuyo nombre menciona porcentaje de batería ("85%", "90% bat") va en "iPhone Usado"
   si esa categoría existe.
2. Un iPhone nuevo/sellado sin porcentaje va en "iPhone".
3. Lo mismo para Samsung usado/nuevo.
4. Si no encaja claramente en ninguna, usá "{self.default_category}".

Producto: {self.product_name}
Precio: {self.price}

Respondé exactamente {{"category": "NombreCategoria"}}."""
