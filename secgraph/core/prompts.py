import json
from typing import Any, Dict, Optional
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.prompt_values import PromptValue

# ─── ENTITY EXTRACTION PROMPTS ──────────────────────────────────────────────────

ENTITY_EXTRACTION_MESSAGES = [
    ("system", "You are a cybersecurity entity extraction expert. Return only valid JSON with detailed entity attributes. CRITICAL: Do NOT create fake CVE IDs. Only extract CVEs that are explicitly mentioned in the provided text with valid CVE-YYYY-NNNN format. If no CVEs are mentioned, use an empty array for cves. Keep the response concise and focused."),
    ("human", """
        # CONTEXT #
        You are a cybersecurity expert analyzing text to extract detailed entities for a knowledge graph visualization.

        Question: {question}
        Answer: {answer}
        {reasoning_block}
        {jargon_block}
        {cve_block}

        # OBJECTIVE #
        Extract the following types of entities from the provided text. Only include entities that are explicitly grounded in the text above.

        1. Vulnerabilities: security weaknesses, attack vectors, exploits
           - Include: name, description, severity (Critical/High/Medium/Low/Info), cvss score if mentioned
        2. Mitigations: solutions, countermeasures, fixes, security controls
           - Include: name, description, type (preventive/detective/corrective), effectiveness (1-10)
        3. Sources: references, databases, tools, frameworks
           - Include: name, type (database/tool/framework/standard), url if mentioned, reliability (1-10)
        4. Problems: issues, challenges, threats, security concerns
           - Include: name, description, category, impact
        5. Affected: systems, components, users, assets impacted
           - Include: name, type (system/component/user/asset), description, impact
        6. Risks: risk assessments, probability, impact analysis
           - Include: name, level (Critical/High/Medium/Low), probability (1-10), impact
        7. CVEs: Common Vulnerabilities and Exposures
           - Include: cveId, description, severity, cvss score
           - Only include CVEs whose IDs appear verbatim in the text (CVE-YYYY-NNNN format)
           - Never generate, invent or guess CVE IDs. If none are mentioned, use an empty array

        # RESPONSE FORMAT #
        Return a single JSON object with exactly these keys, each holding an array (empty when nothing applies):
        {{
          "vulnerabilities": [{{"name": "SQL Injection", "description": "Database injection attack", "severity": "High", "cvss": 8.5}}],
          "mitigations": [{{"name": "Input Validation", "description": "Validate all user inputs", "type": "preventive", "effectiveness": 9}}],
          "sources": [{{"name": "OWASP Top 10", "type": "standard", "reliability": 9}}],
          "problems": [{{"name": "Data Breach Risk", "description": "Risk of sensitive data exposure", "category": "data_security", "impact": "High"}}],
          "affected": [{{"name": "User Database", "type": "system", "description": "Database containing user information", "impact": "Critical"}}],
          "risks": [{{"name": "Unauthorized Access", "level": "High", "probability": 7, "impact": "Data compromise"}}],
          "cves": [{{"cveId": "CVE-2025-0762", "description": "Use after free in Chrome DevTools", "severity": "High", "cvss": 8.8}}]
        }}
    """),
]

ENTITY_EXTRACTION_PROMPT = ChatPromptTemplate.from_messages(ENTITY_EXTRACTION_MESSAGES)

# ─── RELATIONSHIP SYNTHESIS PROMPTS ─────────────────────────────────────────────

RELATIONSHIP_MESSAGES = [
    ("system", "You are a cybersecurity relationship extraction expert. Return only valid JSON arrays."),
    ("human", """
        # CONTEXT #
        You are a cybersecurity expert identifying relationships between entities for a knowledge graph.

        USER QUESTION: "{question}"
        This is the MAIN PROBLEM that all other entities should relate to. Refer to it as "User Question".

        Entities extracted:
        {entities}

        Knowledge Graph Data:
        {kg_context}

        Context: {answer}

        # OBJECTIVE #
        Identify meaningful relationships between these entities, focusing on how they relate to the user's question.

        # RULES #
        1. The user question is the central hub of all relationships
        2. Every major entity should have a relationship to "User Question"
        3. Use "answers" for entities that directly answer the question
        4. Use "explains" for entities that provide context or explanation
        5. Use "demonstrates" for entities that show examples or evidence
        6. Only use these relationship types: {relation_types}
        7. Only include relationships supported by the context or the knowledge graph data

        # RESPONSE FORMAT #
        A JSON array where every item has source (entity name), target (entity name), type, description and strength (1-10, 10 strongest):
        [
          {{"source": "SQL Injection", "target": "User Question", "type": "answers", "description": "SQL injection answers the question about database vulnerabilities", "strength": 10}},
          {{"source": "Input Validation", "target": "SQL Injection", "type": "mitigates", "description": "Input validation prevents SQL injection", "strength": 9}}
        ]
    """),
]

RELATIONSHIP_PROMPT = ChatPromptTemplate.from_messages(RELATIONSHIP_MESSAGES)

# ─── TOPIC EXTRACTION PROMPTS ───────────────────────────────────────────────────

TOPIC_MESSAGES = [
    ("human", """Extract the main cybersecurity topic/concept from this question. Return only the core topic (2-5 words max), not the full sentence.

Question: "{question}"

Return only the topic, no quotes or extra text. Examples:
- "SQL injection" (not "How does SQL injection work?")
- "CVE-2021-44228" (not "What is the Log4j vulnerability?")
- "Parameterized queries" (not "How do parameterized queries prevent SQL injection?")
- "Authentication bypass" (not "What are common authentication bypass techniques?")"""),
]

TOPIC_PROMPT = ChatPromptTemplate.from_messages(TOPIC_MESSAGES)

# ─── HELPER FUNCTIONS ───────────────────────────────────────────────────────────

def get_entity_extraction_prompt(
    answer: str,
    reasoning: Optional[str] = None,
    jargons: Optional[Dict[str, str]] = None,
    cve_info: Optional[Dict[str, Any]] = None,
    question: Optional[str] = None
) -> PromptValue:
    """
    Get the complete prompt for entity extraction.

    Args:
        answer: The analysis text to extract entities from
        reasoning: Optional reasoning trace behind the answer
        jargons: Optional technical terms and their definitions
        cve_info: Optional CVE hint (cve_id, cve_desc, mitigation)
        question: The user's original question

    Returns:
        Complete formatted prompt for LLM
    """
    return ENTITY_EXTRACTION_PROMPT.invoke({
        "question": question or "N/A",
        "answer": answer,
        "reasoning_block": f"Reasoning: {reasoning}" if reasoning else "",
        "jargon_block": f"Technical Terms: {json.dumps(jargons)}" if jargons else "",
        "cve_block": f"CVE Info: {json.dumps(cve_info)}" if cve_info else "",
    })


def get_relationship_prompt(
    entities: Dict[str, Any],
    kg_context: Dict[str, Any],
    answer: str,
    question: str,
    relation_types: str
) -> PromptValue:
    """
    Get the complete prompt for relationship synthesis.

    Args:
        entities: Extracted entities, grouped by category
        kg_context: Matches retrieved from the knowledge graph
        answer: The analysis text
        question: The user's original question (the relationship hub)
        relation_types: Comma-separated allowed relationship types

    Returns:
        Complete formatted prompt for LLM
    """
    return RELATIONSHIP_PROMPT.invoke({
        "question": question,
        "entities": json.dumps(entities, indent=2, default=str),
        "kg_context": json.dumps(kg_context, indent=2, default=str),
        "answer": answer,
        "relation_types": relation_types,
    })


def get_topic_prompt(question: str) -> PromptValue:
    return TOPIC_PROMPT.invoke({"question": question})
