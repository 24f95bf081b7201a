from fluentgym.schemas.session import Personality, Scenario

SCENARIOS: dict[str, Scenario] = {
    "cafe-order": Scenario(
        id="cafe-order",
        title="Ordering at a Café",
        description="You walk into a busy café in Madrid and order breakfast at the counter.",
        difficulty="beginner",
        category="social",
        objectives=[
            "Greet the barista",
            "Order a drink",
            "Order something to eat",
            "Ask for the bill and pay",
        ],
        required_vocabulary=["café con leche", "tostada", "la cuenta", "por favor"],
        cultural_notes=["Breakfast in Spain is usually light and quick."],
        initial_greeting="¡Buenos días! ¿Qué le pongo?",
        estimated_minutes=5,
    ),
    "restaurant": Scenario(
        id="restaurant",
        title="Restaurant Order",
        description="You are at a restaurant and the waiter approaches your table.",
        difficulty="beginner",
        category="travel",
        objectives=[
            "Greet the waiter",
            "Order a beverage",
            "Order a main course",
            "Request the bill",
        ],
        required_vocabulary=["el menú", "la especialidad", "la cuenta"],
        initial_greeting="¡Buenas noches! ¿Ya saben qué van a tomar?",
        estimated_minutes=5,
    ),
    "hotel-checkin": Scenario(
        id="hotel-checkin",
        title="Hotel Check-in",
        description="You arrive at your hotel and check in at the reception desk.",
        difficulty="elementary",
        category="travel",
        objectives=[
            "State your reservation name",
            "Confirm the number of nights",
            "Ask what time breakfast is served",
        ],
        required_vocabulary=["la reserva", "la habitación", "el desayuno", "la llave"],
        estimated_minutes=6,
    ),
    "job-interview": Scenario(
        id="job-interview",
        title="Job Interview",
        description="You are interviewing for a position at an international company.",
        difficulty="advanced",
        category="business",
        objectives=[
            "Introduce your professional background",
            "Describe a challenge you solved",
            "Ask a question about the role",
        ],
        required_vocabulary=["la experiencia", "el puesto", "el equipo", "los logros"],
        cultural_notes=["Use the formal 'usted' unless invited otherwise."],
        estimated_minutes=10,
    ),
}

PERSONALITIES: dict[str, Personality] = {
    "encouraging-mentor": Personality(
        id="encouraging-mentor",
        name="Sofia",
        description="Warm, supportive, celebrates small wins",
        tone="enthusiastic and positive",
        traits=["patient", "celebratory", "motivating"],
        speaking_speed="slow",
        prompt_modifier=(
            "Celebrate every effort. Use positive reinforcement and guide gently around mistakes "
            "without criticism."
        ),
    ),
    "professional-coach": Personality(
        id="professional-coach",
        name="Marcus",
        description="Direct, goal-oriented, focuses on measurable improvement",
        tone="professional and constructive",
        traits=["direct", "goal-focused", "analytical"],
        speaking_speed="normal",
        prompt_modifier="Keep a professional register and push the learner toward precise phrasing.",
    ),
    "friendly-peer": Personality(
        id="friendly-peer",
        name="Raj",
        description="Casual, relatable, like chatting with a friend",
        tone="casual and conversational",
        traits=["relatable", "informal", "encouraging"],
        speaking_speed="fast",
        prompt_modifier="Use casual, natural language with contractions and informal expressions.",
    ),
    "patient-guide": Personality(
        id="patient-guide",
        name="Yuki",
        description="Calm, unhurried, explains thoroughly",
        tone="calm and patient",
        traits=["thorough", "gentle", "explanatory"],
        speaking_speed="slow",
        prompt_modifier="Never rush the learner. Rephrase when something is not understood.",
    ),
}


def get_scenario(scenario_id: str) -> Scenario | None:
    return SCENARIOS.get(scenario_id)


def get_personality(personality_id: str) -> Personality | None:
    return PERSONALITIES.get(personality_id)
