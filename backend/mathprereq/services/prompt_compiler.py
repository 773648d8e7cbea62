"""
Prompt Compiler Service

Turns pipeline state (the question, the prerequisite path, retrieved course
material) into the system/user prompt pairs sent to the LLM.
"""

from mathprereq.services.entities import Concept


IDENTIFY_SYSTEM_PROMPT = """You are an expert mathematics educator specializing in calculus and its foundational prerequisites. Your task is to analyze a student's query and identify the key mathematical concepts involved, focusing on concepts typically taught in undergraduate calculus courses and their essential prerequisite concepts.

Instructions:
1. Extract only core mathematical concepts essential to understanding calculus, including foundational prerequisite topics from algebra, functions, trigonometry, limits, and continuity.
2. Include concepts that clearly have prerequisite dependency relationships. For example, "limits" is a prerequisite for "derivatives," which in turn is a prerequisite for "integration."
3. Use precise and standardized mathematical terminology.
4. Format your output as a lowercase, comma-separated list with no extra text.
5. Exclude any broad, vague, or non-calculus-related terms.
6. When a method or rule is included (e.g., chain rule), also include its base concept (e.g., derivatives).
7. Order the concepts as a logical learning progression.

Examples:
Query: "I don't understand how to find the derivative of x^2"
Response: algebra, functions, limits, derivatives, power rule

Query: "What is integration by parts and when do I use it?"
Response: algebra, functions, derivatives, integration, integration by parts

Query: "I'm confused about limits and continuity"
Response: algebra, functions, limits, continuity

Query: "How do I apply the chain rule?"
Response: algebra, functions, derivatives, chain rule"""


EXPLANATION_SYSTEM_PROMPT = """You are an expert mathematics tutor specializing in calculus. Your goal is to provide clear, complete, educational explanations that help students understand mathematical concepts and their prerequisites.

Guidelines:
1. Start with the fundamental concepts and build up logically.
2. Explain WHY prerequisites are needed, not just WHAT they are.
3. Use clear, accessible language but maintain mathematical accuracy.
4. Include specific step-by-step solutions with calculations.
5. Address the student's specific question directly.
6. Use the provided context and learning path to ground your explanation.
7. End with a clear conclusion or final answer.

Math Formatting:
Wrap mathematical expressions in dollar-sign delimiters for LaTeX rendering, e.g. $\\frac{d}{dx} x^2 = 2x$.

IMPORTANT: Provide a complete, thorough explanation. Do not stop mid-sentence."""


def compile_identify_prompt(question: str) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for concept identification."""
    return IDENTIFY_SYSTEM_PROMPT, f"Student query: '{question}'\n\nIdentified concepts:"


def format_learning_path(path: list[Concept]) -> str:
    if not path:
        return ""
    return "Learning path: " + " -> ".join(c.name for c in path)


def format_context(chunks: list[str]) -> str:
    return "\n\n".join(f"Context {i}: {chunk}" for i, chunk in enumerate(chunks, start=1))


def compile_explanation_prompt(
    question: str,
    path: list[Concept],
    chunks: list[str],
) -> tuple[str, str]:
    """
    Build the explanation prompts.

    Args:
        question: The student's question (or the synthesized concept prompt)
        path: Prerequisite path, prerequisites first
        chunks: Retrieved course material, may be empty

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    learning_path = format_learning_path(path)
    sections = [f"Student Question: {question}"]
    if learning_path:
        sections.append(learning_path)
    if chunks:
        sections.append(f"Relevant Course Material:\n{format_context(chunks)}")

    sections.append(
        """Please provide a complete, educational explanation that:
1. Addresses the student's question directly
2. Explains any necessary prerequisite concepts
3. Shows step-by-step solutions with calculations
4. Shows how the concepts connect to each other
5. Provides the final answer if applicable
6. Includes practical guidance for learning

Explanation:"""
    )
    return EXPLANATION_SYSTEM_PROMPT, "\n\n".join(sections)


def build_concept_query_prompt(concept_name: str) -> str:
    """The question asked on behalf of a user who only named a concept."""
    return f"""Please provide a comprehensive explanation of the mathematical concept "{concept_name}".

Include the following in your explanation:
1. Definition and core principles
2. Prerequisites needed to understand this concept
3. Key formulas or theorems (if applicable)
4. Step-by-step examples with clear explanations
5. Common applications and real-world uses
6. Common mistakes students make and how to avoid them
7. Connections to other mathematical concepts

Make the explanation educational, detailed, and suitable for students learning this concept."""
