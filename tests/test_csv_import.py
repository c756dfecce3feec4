"""
Tests for CSV header normalization and parsing (salesdesk.csv_import).
"""

import unittest

from salesdesk.csv_import import (
    KIND_CLIENTS,
    KIND_PRODUCTS,
    CsvImportError,
    map_headers,
    normalize_header,
    normalize_row,
    parse_csv,
    template_csv,
)


class TestClientHeaders(unittest.TestCase):
    """Client header rules"""

    def test_known_headers(self):
        cases = {
            "Código do Cliente": "code",
            "CNPJ": "cnpj",
            "WhatsApp": "phone",
            "Nome do Cliente": "name",
            "Razão Social": "name",
            "E-mail": "email",
            "Endereço": "address",
            "Cidade": "city",
            "UF": "state",
            "Região": "region",
            "  Telefone  ": "phone",
        }
        for raw, expected in cases.items():
            with self.subTest(header=raw):
                self.assertEqual(normalize_header(raw, KIND_CLIENTS), expected)

    def test_unmatched_header_passes_through(self):
        self.assertEqual(normalize_header("Observações Extras", KIND_CLIENTS), "Observações Extras")

    def test_email_before_address(self):
        """"Endereço de e-mail" is an email column, not the address"""
        self.assertEqual(normalize_header("Endereço de E-mail", KIND_CLIENTS), "email")

    def test_uf_is_exact_match(self):
        self.assertNotEqual(normalize_header("Ufanismo", KIND_CLIENTS), "state")

    def test_normalize_row(self):
        row = {"Nome do Cliente": "Acme", "CNPJ": "12.345.678/0001-90"}
        self.assertEqual(normalize_row(row, KIND_CLIENTS), {"name": "Acme", "cnpj": "12.345.678/0001-90"})

    def test_duplicate_canonical_keeps_raw_header(self):
        keys = map_headers(["Nome", "Razão Social", "CNPJ"], KIND_CLIENTS)
        self.assertEqual(keys, ["name", "Razão Social", "cnpj"])

    def test_literal_canonical_header_does_not_steal_field(self):
        self.assertEqual(map_headers(["Nome", "name"], KIND_CLIENTS), ["name", "name_2"])
        parsed = parse_csv("Nome,name\nAcme,Other\n", KIND_CLIENTS)
        self.assertEqual(parsed["columns"], ["name", "name_2"])
        self.assertEqual(parsed["rows"][0]["name"], "Acme")

    def test_repeated_raw_header_is_suffixed(self):
        keys = map_headers(["Nome", "Nome", "Nome"], KIND_CLIENTS)
        self.assertEqual(keys, ["name", "Nome", "Nome_3"])


class TestProductHeaders(unittest.TestCase):
    """Product header rules"""

    def test_known_headers(self):
        cases = {
            "Código de Barras": "barcode",
            "EAN": "barcode",
            "Código": "code",
            "IdProduto": "code",
            "Marca Conversão": "conversion_brand",
            "Conversão": "conversion",
            "Marcas Equivalentes": "equivalent_brands",
            "Marca": "brand",
            "Descrição": "description",
            "Nome do Produto": "name",
            "Preço": "price",
            "Estoque": "stock_quantity",
            "Categoria": "category",
            "Ativo": "active",
        }
        for raw, expected in cases.items():
            with self.subTest(header=raw):
                self.assertEqual(normalize_header(raw, KIND_PRODUCTS), expected)

    def test_unmatched_header_passes_through(self):
        self.assertEqual(normalize_header("Observações Extras", KIND_PRODUCTS), "Observações Extras")

    def test_marca_only_exact(self):
        self.assertEqual(normalize_header("Marca do Fornecedor", KIND_PRODUCTS), "Marca do Fornecedor")

    def test_product_brand_column_does_not_claim_name(self):
        self.assertEqual(normalize_header("Marca do Produto", KIND_PRODUCTS), "brand")
        keys = map_headers(["Marca do Produto", "Nome do Produto"], KIND_PRODUCTS)
        self.assertEqual(keys, ["brand", "name"])

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            normalize_header("Nome", "suppliers")


class TestParseCsv(unittest.TestCase):
    """parse_csv output and failures"""

    def test_semicolon_file_with_preview(self):
        lines = ["Código do Cliente;Nome do Cliente;CNPJ;WhatsApp;Observações Extras"]
        for i in range(1, 8):
            lines.append(f"{i};Cliente {i};0000000000000{i};1199999000{i};obs {i}")
        data = ("\n".join(lines) + "\n").encode("utf-8")

        parsed = parse_csv(data, KIND_CLIENTS)

        self.assertEqual(parsed["columns"], ["code", "name", "cnpj", "phone", "Observações Extras"])
        self.assertEqual(parsed["total"], 7)
        self.assertEqual(len(parsed["rows"]), 7)
        self.assertEqual(len(parsed["preview"]), 5)
        self.assertEqual(parsed["rows"][0]["name"], "Cliente 1")
        self.assertEqual(parsed["rows"][6]["Observações Extras"], "obs 7")
        self.assertEqual(parsed["header_map"]["WhatsApp"], "phone")

    def test_comma_file_with_quotes_and_bom(self):
        data = '\ufeffNome,Cidade,Endereço\n"Auto Peças, Filial 2",Campinas,"Rua A, 10"\n'.encode("utf-8")
        parsed = parse_csv(data, KIND_CLIENTS)
        self.assertEqual(parsed["rows"], [{"name": "Auto Peças, Filial 2", "city": "Campinas", "address": "Rua A, 10"}])

    def test_windows_encoded_file(self):
        data = "Código;Nome\n10;José Peças\n".encode("cp1252")
        parsed = parse_csv(data, KIND_CLIENTS)
        self.assertEqual(parsed["rows"][0], {"code": "10", "name": "José Peças"})

    def test_blank_lines_and_trailing_empty_cells_are_ignored(self):
        data = b"Codigo,Nome\n\n1,Acme,,\n\n2,Beta\n"
        parsed = parse_csv(data, KIND_CLIENTS)
        self.assertEqual(parsed["total"], 2)

    def test_empty_file(self):
        with self.assertRaises(CsvImportError) as ctx:
            parse_csv(b"", KIND_CLIENTS)
        self.assertEqual(ctx.exception.code, "empty_file")

    def test_header_only_file(self):
        with self.assertRaises(CsvImportError) as ctx:
            parse_csv(b"Nome,CNPJ\n", KIND_CLIENTS)
        self.assertEqual(ctx.exception.code, "empty_file")
        self.assertNotEqual(ctx.exception.message, "O arquivo está vazio.")

    def test_missing_minimum_fields(self):
        with self.assertRaises(CsvImportError) as ctx:
            parse_csv(b"Cidade,Telefone\nCampinas,1999\n", KIND_CLIENTS)
        self.assertEqual(ctx.exception.code, "missing_fields")
        self.assertIn("Cidade", ctx.exception.message)

    def test_wrong_field_count(self):
        with self.assertRaises(CsvImportError) as ctx:
            parse_csv(b"Codigo,Nome\n1,Acme\n2,Beta,Extra\n3,Gama\n", KIND_CLIENTS)
        self.assertEqual(ctx.exception.code, "parse_error")
        self.assertIn("Linha 3", ctx.exception.message)

    def test_bad_quoting(self):
        with self.assertRaises(CsvImportError) as ctx:
            parse_csv(b'Codigo,Nome\n1,"Acme"x\n', KIND_CLIENTS)
        self.assertEqual(ctx.exception.code, "parse_error")

    def test_product_file(self):
        data = "IdProduto;Descrição;Marca;Preço;Estoque\nPSL55;Filtro de óleo;Tecfil;12,50;30\n".encode("utf-8")
        parsed = parse_csv(data, KIND_PRODUCTS)
        self.assertEqual(parsed["columns"], ["code", "description", "brand", "price", "stock_quantity"])
        self.assertEqual(parsed["rows"][0]["price"], "12,50")

    def test_template(self):
        self.assertTrue(template_csv(KIND_PRODUCTS).startswith("code,name"))


if __name__ == "__main__":
    unittest.main()
